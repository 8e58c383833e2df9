# fossil_app/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from . import auth
from .catalog import catalog_router
from .config import DEFAULT_PAGE_SIZE, Settings, get_settings
from .rest_client import RestClient
from .sessions import SessionRegistry
from .storage import InMemoryBackend


logger = logging.getLogger(__name__)


def build_registry(settings: Settings) -> SessionRegistry:
    if settings.fossil_backend == "memory":
        backend = InMemoryBackend()
    else:
        backend = RestClient(
            settings.supabase_url,
            settings.supabase_anon_key,
            timeout=settings.http_timeout,
        )
    logger.info("Using %s backend", settings.fossil_backend)
    return SessionRegistry(
        backend, bucket=settings.storage_bucket, max_sessions=settings.max_sessions
    )


def create_app(
    registry: Optional[SessionRegistry] = None,
    default_page_size: int = DEFAULT_PAGE_SIZE,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.registry is None:
            settings = get_settings()
            logging.basicConfig(
                level=settings.log_level.upper(),
                format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            )
            app.state.registry = build_registry(settings)
            app.state.default_page_size = settings.default_page_size
        yield
        await app.state.registry.aclose()

    app = FastAPI(
        title="Fossil Catalog",
        description=(
            "Catalogue of fossil finds: species, location, discovery date, "
            "tags, a photo and a description, owned by the user who "
            "recorded them."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.default_page_size = default_page_size

    # 🔹 Quick liveness check
    @app.get("/")
    def health_check():
        return {"status": "ok", "message": "Fossil catalog live 🚀"}

    app.include_router(auth.router)
    app.include_router(catalog_router)
    return app


app = create_app()
