import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api_routers.v1 import api_router
from app.features.diagnostic.services.collaborators import build_collaborators
from app.features.health.routes.health import router as health_router
from app.platform.config import get_settings
from app.platform.db.session import init_models
from app.platform.exceptions import add_exception_handlers

# Configure logging to show INFO level messages
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    # Raises ConfigurationError before the app accepts any request
    app.state.collaborators = build_collaborators(settings)
    if settings.DATABASE_AUTO_CREATE:
        await init_models()
    yield


app = FastAPI(
    title="Website Diagnostic AI API",
    description="Automated website diagnostics with AI conversion insights",
    version="1.0.0",
    lifespan=lifespan,
)


# Root endpoint for basic info
@app.get("/", tags=["Info"])
def root():
    return {
        "app_name": "Website Diagnostic AI API",
        "description": "Content, technology, performance and conversion diagnostics for any website.",
        "version": "1.0.0",
        "docs_url": "/docs",
        "api_base": "/api/v1",
    }


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

add_exception_handlers(app)

app.include_router(health_router)
app.include_router(api_router, prefix="/api/v1")
