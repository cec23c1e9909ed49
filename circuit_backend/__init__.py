"""Circuit Diagram Assistant - Arduino wiring diagrams as SVG."""

__version__ = "1.0.0"
