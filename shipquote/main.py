"""
shipquote
FastAPI application entry point

Startup builds the long-lived pieces once and keeps them on app.state:
- rate store (Redis, or in-process when REDIS_URL is unset)
- quote cache and fallback engine
- provider registry with every registered carrier
Shutdown closes carrier HTTP clients and the Redis connection.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from shipquote.api.routes import shipping
from shipquote.core.config import settings
from shipquote.core.error_handler import shipquote_error_handler
from shipquote.core.exceptions import ShipquoteError
from shipquote.core.logging_config import configure_logging
from shipquote.core.redis_client import close_redis
from shipquote.modules.shipping.carriers import build_provider_registry
from shipquote.services.fallback_engine import FallbackEngine
from shipquote.services.rate_store import QuoteCache, create_rate_store
from shipquote.services.secrets import EnvSecretStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    store = await create_rate_store()
    quote_cache = QuoteCache(store)
    fallback_engine = FallbackEngine(quote_cache)

    app.state.quote_cache = quote_cache
    app.state.fallback_engine = fallback_engine
    app.state.provider_registry = build_provider_registry(EnvSecretStore(), fallback_engine)
    logger.info(
        f"{settings.APP_NAME} started: environment={settings.ENVIRONMENT}, "
        f"fallback={fallback_engine.default_policy.mechanism.value}"
    )

    yield

    await app.state.provider_registry.close()
    await close_redis()
    logger.info("Carrier clients and Redis connection closed")


def create_app() -> FastAPI:
    app = FastAPI(
        lifespan=lifespan,
        title=settings.APP_NAME,
        debug=settings.DEBUG,
    )
    app.add_exception_handler(ShipquoteError, shipquote_error_handler)
    app.include_router(shipping.router)

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {"status": "healthy", "environment": settings.ENVIRONMENT}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "shipquote.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
