"""
Docflow API Application Factory
"""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import get_config
from .documents import router as documents_router
from .workflows import router as workflows_router
from .stages import router as stages_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Docflow Workflow API",
        description="Multi-stage document approval workflows",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(documents_router, prefix="/documents", tags=["Documents"])
    app.include_router(workflows_router, prefix="/workflows", tags=["Workflows"])
    app.include_router(stages_router, prefix="/stages", tags=["Stages"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "docflow_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Docflow Workflow API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "documents": "/documents",
                "workflows": "/workflows",
                "stages": "/stages",
            }
        }

    return app


app = create_app()


def run_server(host: str = None, port: int = None, debug: bool = None):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "docflow.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=config.api_reload if debug is None else debug,
        log_level=config.log_level.lower()
    )
