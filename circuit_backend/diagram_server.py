"""
Circuit Diagram Assistant – FastAPI Backend.

Serves the stored circuit library and turns circuits (stored, posted
explicitly, or extracted from a question by the local LLM) into SVG wiring
diagrams under OUTPUT_DIR.

Run:
    python -m circuit_backend.diagram_server
"""

from __future__ import annotations

import logging
import os
import re
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field

from .circuit_schema import DiagramRequest
from .engines.artwork_loader import ArtworkCache
from .engines.diagram_engine import OUTPUT_DIR, CircuitAssembler, generate_diagram
from .engines.library_loader import CircuitLibrary
from .engines.llm_engine import load_llm

# ── Logging ───────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "info").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────────

LLM_ENABLED = os.environ.get("LLM_ENABLED", "true").lower() == "true"

# ── Response models ───────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status:               str
    version:              str
    uptime_seconds:       float
    llm_loaded:           bool = False
    circuits_available:   int  = 0
    components_available: int  = 0
    artwork_cached:       int  = 0
    capabilities:         List[str] = Field(default_factory=list)


class ExtractRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=5000)


class DiagramResponse(BaseModel):
    success:                bool
    circuit_name:           str            = ""
    component_count:        int            = 0
    wire_count:             int            = 0
    components:             List[str]      = Field(default_factory=list)
    wires:                  List[Dict[str, str]] = Field(default_factory=list)
    skipped_components:     List[str]      = Field(default_factory=list)
    unresolved_connections: List[str]      = Field(default_factory=list)
    output_file:            Optional[str]  = None   # filename inside output/
    download_url:           Optional[str]  = None   # /download/<filename>
    generation_time_ms:     float          = 0.0
    error:                  Optional[str]  = None
    request_id:             str            = Field(default_factory=lambda: str(uuid.uuid4())[:8])


# ── Application State ─────────────────────────────────────────────────────────

class AppState:
    def __init__(self) -> None:
        self.llm:        Any                        = None
        self.library:    CircuitLibrary             = CircuitLibrary()
        self.cache:      ArtworkCache               = ArtworkCache()
        self.assembler:  CircuitAssembler           = CircuitAssembler(cache=self.cache)
        self.output_dir: Path                       = OUTPUT_DIR
        self.start_time: float                      = time.time()

    @property
    def uptime_seconds(self) -> float:
        return time.time() - self.start_time

    def get_capabilities(self) -> List[str]:
        caps = ["diagram_generation", "circuit_library"]
        if self.llm:
            caps.append("llm_extraction")
        return caps


_state = AppState()


# ── Lifespan ──────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Circuit Diagram Assistant…")

    try:
        _state.output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.warning("Cannot create output directory %s: %s", _state.output_dir, exc)

    _state.library.load()

    if LLM_ENABLED:
        _state.llm = load_llm()
        if _state.llm is None:
            logger.warning("No LLM backend available – /diagram/extract disabled.")
    else:
        logger.info("LLM disabled by configuration.")

    logger.info("Startup complete. capabilities=%s", _state.get_capabilities())
    yield
    logger.info("Shutting down Circuit Diagram Assistant.")


# ── FastAPI app ───────────────────────────────────────────────────────────────

app = FastAPI(
    title="Circuit Diagram Assistant",
    description="Arduino circuit library and SVG wiring diagram generator",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ── Request timing middleware ─────────────────────────────────────────────────

@app.middleware("http")
async def add_timing_header(request: Request, call_next: Any):
    t0 = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Process-Time-Ms"] = f"{(time.perf_counter() - t0) * 1000:.1f}"
    return response


# ── Global error handler ──────────────────────────────────────────────────────

@app.exception_handler(Exception)
async def global_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception %s %s", request.method, request.url)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An internal server error occurred."},
    )


# ── Helpers ───────────────────────────────────────────────────────────────────

async def _render(request: DiagramRequest) -> DiagramResponse:
    t0 = time.perf_counter()
    result = await generate_diagram(request, _state.assembler, _state.output_dir)
    elapsed_ms = (time.perf_counter() - t0) * 1000

    if not result["success"]:
        if result.get("error_type") == "output_error":
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"type": "output_error", "message": "Diagram could not be saved."},
            )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Diagram generation failed.",
        )

    output_file = result.get("output_file")
    return DiagramResponse(
        success=True,
        circuit_name=result["circuit_name"],
        component_count=result["component_count"],
        wire_count=result["wire_count"],
        components=result["components"],
        wires=result["wires"],
        skipped_components=result["skipped_components"],
        unresolved_connections=result["unresolved_connections"],
        output_file=Path(output_file).name if output_file else None,
        download_url=result.get("download_url"),
        generation_time_ms=round(elapsed_ms, 1),
    )


def _circuit_or_404(name: str):
    circuit = _state.library.get_circuit(name)
    if circuit is None:
        raise HTTPException(status_code=404, detail=f"Circuit '{name}' not found.")
    return circuit


# ── Endpoints ─────────────────────────────────────────────────────────────────

@app.get("/health", response_model=HealthResponse, tags=["meta"])
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="healthy" if _state.library.components else "degraded",
        version=app.version,
        uptime_seconds=round(_state.uptime_seconds, 1),
        llm_loaded=_state.llm is not None,
        circuits_available=len(_state.library.circuits),
        components_available=len(_state.library.components),
        artwork_cached=len(_state.cache),
        capabilities=_state.get_capabilities(),
    )


@app.get("/circuits", tags=["library"])
async def list_circuits() -> List[Dict[str, Any]]:
    return [c.summary() for c in _state.library.circuits]


@app.get("/circuits/{name}", tags=["library"])
async def get_circuit(name: str) -> Dict[str, Any]:
    """Full stored record of the first circuit whose name contains *name*."""
    return _circuit_or_404(name).model_dump(by_alias=True)


@app.get("/categories", tags=["library"])
async def list_categories() -> List[str]:
    return _state.library.categories()


@app.get("/search", tags=["library"])
async def search_circuits(q: str = Query(..., min_length=1, max_length=200)) -> List[Dict[str, Any]]:
    return [c.summary() for c in _state.library.search(q)]


@app.get("/components", tags=["library"])
async def list_components() -> List[Dict[str, Any]]:
    return [c.summary() for c in _state.library.components]


@app.post("/diagram", response_model=DiagramResponse, tags=["diagrams"])
async def create_diagram(request: DiagramRequest) -> DiagramResponse:
    """Render an explicit circuit (name, component labels, connection lines)."""
    return await _render(request)


@app.post("/circuits/{name}/diagram", response_model=DiagramResponse, tags=["diagrams"])
async def create_circuit_diagram(name: str) -> DiagramResponse:
    """Render a stored circuit."""
    return await _render(_circuit_or_404(name).to_diagram_request())


@app.post("/diagram/extract", response_model=DiagramResponse, tags=["diagrams"])
async def extract_diagram(request: ExtractRequest) -> DiagramResponse:
    """Question → LLM extraction → rendered diagram."""
    if _state.llm is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No LLM backend available.",
        )
    extracted = await _state.llm.extract_circuit(request.question)
    if extracted is None:
        return DiagramResponse(success=False, error="No circuit could be extracted from the question.")
    return await _render(extracted)


@app.get("/download/{filename}", tags=["diagrams"])
async def download_file(filename: str) -> FileResponse:
    """Download a previously generated .svg diagram."""
    safe = re.sub(r"[^a-zA-Z0-9_.\-]", "", filename)
    if safe != filename or not safe.endswith(".svg") or safe.startswith("."):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only .svg files are downloadable.",
        )

    file_path = _state.output_dir / safe
    if not file_path.is_file():
        raise HTTPException(status_code=404, detail=f"File not found: {safe}")

    return FileResponse(path=str(file_path), filename=safe, media_type="image/svg+xml")


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "circuit_backend.diagram_server:app",
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", "8765")),
        reload=os.environ.get("RELOAD", "false").lower() == "true",
        log_level=os.environ.get("LOG_LEVEL", "info"),
    )
