"""MEDITONE FastAPI server: main application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from meditone.api.routes.render import router as render_router

app = FastAPI(
    title="MEDITONE",
    description="Offline meditation track renderer",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(render_router, prefix="/api")


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "service": "meditone"}


@app.get("/api/info")
async def info() -> dict[str, object]:
    """Service information and layer map."""
    from meditone import __version__

    return {
        "name": "MEDITONE",
        "version": __version__,
        "layers": {
            "ear": "Narration decoding & rate conversion",
            "hands": "Procedural sounds, ambience & background beds",
            "grid": "Script model & timeline planning",
            "console": "Mix graph, offline render, mastering & encoding",
        },
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "backgrounds": "GET /api/backgrounds",
            "render": "POST /api/render",
        },
    }


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    from meditone.config import settings

    uvicorn.run(app, host=settings.host, port=settings.port)
