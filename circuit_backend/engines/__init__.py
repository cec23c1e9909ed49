"""Diagram pipeline engines: name resolution, pins, artwork, layout, wiring, rendering."""
