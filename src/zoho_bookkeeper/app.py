from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from zoho_bookkeeper.api.routes import accounts, transactions
from zoho_bookkeeper.core import settings
from zoho_bookkeeper.integration.zoho import ZohoBooksClient
from zoho_bookkeeper.logger import get_logger, setup_logging
from zoho_bookkeeper.services.categorization import build_pipeline
from zoho_bookkeeper.storage.cache import TransactionCache

logger = get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing services...")
        settings.log_environment()

        zoho = ZohoBooksClient()
        if not zoho.is_configured:
            logger.warning("ZOHO_ORGANIZATION_ID or ZOHO_ACCESS_TOKEN not set. Zoho calls will fail.")

        cache = TransactionCache(data_dir=settings.DATA_DIR, filename=settings.CACHE_FILENAME)

        app.state.zoho = zoho
        app.state.cache = cache
        app.state.pipeline = build_pipeline(cache)

        logger.info("Services initialized.")
        try:
            yield
        finally:
            logger.info("Service shutting down.")
            cache.save()
            await zoho.aclose()

    app = FastAPI(title="Zoho Bookkeeper", lifespan=lifespan)

    app.include_router(accounts.router)
    app.include_router(transactions.router)

    return app


app = create_app()
