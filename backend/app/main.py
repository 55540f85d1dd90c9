"""FastAPI application."""


from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.app.api.routes.documents import router as documents_router
from backend.app.api.routes.extract import router as extract_router
from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.ingest import router as ingest_router
from backend.app.api.routes.metrics import router as metrics_router
from backend.app.api.routes.search import router as search_router
from backend.app.config import get_settings


app = FastAPI(title="DSS Manuals API", version="0.1.0")

# Browser clients call from arbitrary origins; the middleware also answers
# pre-flight OPTIONS requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(documents_router)
app.include_router(ingest_router)
app.include_router(search_router)
app.include_router(extract_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "DSS Manuals API", "version": "0.1.0"}
