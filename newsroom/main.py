"""
FastAPI application for the newsroom pipeline.

Run with:
    uvicorn newsroom.main:app --reload
"""
from fastapi import FastAPI

from .api.v1.collection.routes import router as collection_router
from .api.v1.pipeline.routes import router as pipeline_router
from .api.v1.processing.routes import router as processing_router
from .api.v1.scheduler.routes import router as scheduler_router
from .core.dependencies import lifespan, setup_cors

API_PREFIX = "/api/v1"


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="Newsroom Pipeline",
        description="Feed collection, scoring, generation, validation and publishing",
        version="0.3.0",
        lifespan=lifespan if use_lifespan else None,
    )
    setup_cors(app)

    app.include_router(pipeline_router, prefix=API_PREFIX)
    app.include_router(collection_router, prefix=API_PREFIX)
    app.include_router(processing_router, prefix=API_PREFIX)
    app.include_router(scheduler_router, prefix=API_PREFIX)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
