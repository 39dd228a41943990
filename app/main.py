import logging

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from app.api.routes.quality import router as quality_router
from app.core.config import load_settings

logging.basicConfig(
    level=getattr(logging, load_settings().log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Credit Quality Engine",
    description="Recovers structured credit data from malformed generator output and scores it for structure, completeness and agreement with trusted baselines",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.include_router(quality_router)

@app.get("/", tags=["health"])
def root():
    return {"service": "credit-quality-engine", "status": "running"}

@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}

def custom_openapi():
    """Generate OpenAPI schema with custom settings."""
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title="Credit Quality Engine API",
        version="0.1.0",
        description="JSON recovery and quality scoring for generator-extracted credits",
        routes=app.routes,
    )
    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = custom_openapi
