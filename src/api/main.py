"""
Order automation engine - FastAPI application
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import settings
from src.api.routes import orders
from src.services.order_automation_service import create_automation_service
from src.services.storage import InMemoryOrderStorage, OrderStorage
from src.utils.logger import logger


def create_app(storage: Optional[OrderStorage] = None, start_scheduler: bool = True) -> FastAPI:
    """Создание и настройка FastAPI приложения.

    The engine does not own order or restaurant data: deployments pass the
    marketplace's ``OrderStorage`` implementation here. Without one the app
    runs on an empty ``InMemoryOrderStorage``, which is only useful when the
    caller seeds it (tests, local demos); the module-level ``app`` served by
    ``main.py`` is such an instance and logs a warning at startup.
    """

    ephemeral_storage = storage is None
    storage = storage or InMemoryOrderStorage()
    automation = create_automation_service(storage)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Order automation engine starting up", **settings.to_dict())
        if ephemeral_storage:
            logger.warning("No order storage injected: running on an empty in-memory store, "
                           "placements will 404 until it is seeded")
        if start_scheduler:
            await automation.scheduler.start()
        try:
            yield
        finally:
            logger.info("🔄 Order automation engine shutting down")
            if start_scheduler:
                await automation.scheduler.stop()

    app = FastAPI(
        title="Order Automation & SLA Engine",
        description="Business rule validation, automatic restaurant assignment and SLA enforcement",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.storage = storage
    app.state.automation = automation
    app.include_router(orders.router)

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "environment": settings.ENVIRONMENT,
            "stats": automation.get_stats(),
        }

    @app.get("/api/automation/catalog")
    async def get_catalog():
        """Текущие SLA цели и приоритеты"""
        return automation.validator.catalog.to_dict()

    return app


app = create_app()
