"""
Club Funnel Bot
===============

Telegram onboarding funnel (install app -> join club -> bonus -> top-up) with
a manager relay, plus the REST API used by the admin dashboard.

Both run in one process: aiogram polling and uvicorn share the event loop.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import uvicorn
from aiogram import Bot, Dispatcher
from aiogram.types import ErrorEvent
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from api.admin import router as admin_router
from api.webhooks import router as webhooks_router
from bot.controller import FunnelController
from bot.funnel_router import router as funnel_router
from bot.manager_router import router as manager_router
from config.feature_config import get_feature_config
from config.settings import Settings, get_settings
from infra import security_filters
from infra.middleware import SecurityHeadersMiddleware, TimingMiddleware
from services.config_resolver import ConfigResolver
from services.db_pool import close_pool, get_pool, get_pool_stats
from services.funnel import FunnelStateMachine
from services.manager_relay import ManagerRelay
from services.notifier import Notifier
from services.payment_service import PaymentService
from services.payments.gateway import PaymentGateway
from services.storage import PostgresStorage, Storage

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO"):
    """Configure logging with PII masking"""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    security_filters.install()


@dataclass
class AppContainer:
    """Everything the bot handlers and API routes share."""
    settings: Settings
    storage: Storage
    resolver: ConfigResolver
    notifier: Notifier
    relay: ManagerRelay
    gateway: PaymentGateway
    payments: PaymentService
    controller: FunnelController
    bot: Optional[Bot] = None


def build_container(settings: Settings, storage: Storage, bot: Optional[Bot] = None) -> AppContainer:
    resolver = ConfigResolver(storage, get_feature_config())
    notifier = Notifier(bot, resolver, settings.upload_dir)
    relay = ManagerRelay(storage, resolver, notifier, broadcast_delay=settings.broadcast_delay_sec)
    gateway = PaymentGateway(resolver, currency=settings.payment_currency, timeout=settings.payment_http_timeout)
    payments = PaymentService(storage, notifier, relay, gateway)
    controller = FunnelController(storage, notifier, relay, payments, FunnelStateMachine())
    return AppContainer(
        settings=settings,
        storage=storage,
        resolver=resolver,
        notifier=notifier,
        relay=relay,
        gateway=gateway,
        payments=payments,
        controller=controller,
        bot=bot,
    )


def build_dispatcher(container: AppContainer) -> Dispatcher:
    # Handler parameters are filled from workflow data by name
    dp = Dispatcher(
        controller=container.controller,
        relay=container.relay,
        resolver=container.resolver,
    )
    # Operator chat first, so its free text never reaches the funnel
    dp.include_router(manager_router)
    dp.include_router(funnel_router)

    @dp.errors()
    async def on_error(event: ErrorEvent):
        logger.exception(f"Unhandled bot error: {event.exception}", exc_info=event.exception)
        return True

    return dp


def create_app(container: AppContainer) -> FastAPI:
    settings = container.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Expose shared services to routes via app.state."""
        app.state.settings = settings
        app.state.storage = container.storage
        app.state.resolver = container.resolver
        app.state.relay = container.relay
        app.state.payments = container.payments
        yield

    app = FastAPI(
        title="Club Funnel Bot API",
        description="Admin dashboard API and payment webhook",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(TimingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.base_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["*"],
    )

    app.include_router(admin_router)
    app.include_router(webhooks_router)

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=str(upload_dir)), name="uploads")

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.get("/healthz")
    async def health_check():
        try:
            pool_stats = await get_pool_stats()
        except Exception as e:
            pool_stats = {"error": str(e)}
        return {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "bot": "running" if container.bot else "disabled",
            "environment": settings.environment,
            "database_pool": pool_stats,
        }

    return app


async def run_bot(dp: Dispatcher, bot: Bot):
    """Run the Telegram bot."""
    logger.info("🤖 Starting Telegram bot polling...")
    await dp.start_polling(bot)


async def run_fastapi(app: FastAPI, port: int):
    """Run the FastAPI server."""
    logger.info(f"🌐 Starting FastAPI server on port {port}...")

    config = uvicorn.Config(
        app=app,
        host="0.0.0.0",
        port=port,
        log_level="info"
    )
    server = uvicorn.Server(config)
    await server.serve()


async def main() -> int:
    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        pool = await get_pool(settings.database_url)
        storage = PostgresStorage(pool)
        await storage.init_schema()
    except Exception as e:
        logger.critical(f"Database unavailable, refusing to start: {e}")
        return 1

    bot = Bot(token=settings.bot_token) if settings.bot_token else None
    container = build_container(settings, storage, bot)
    app = create_app(container)

    tasks = [run_fastapi(app, settings.port)]
    if bot is None:
        logger.warning("TG_TOKEN not set, bot not started; serving the API only")
    else:
        tasks.append(run_bot(build_dispatcher(container), bot))

    try:
        await asyncio.gather(*tasks)
    finally:
        if bot is not None:
            await bot.session.close()
        await close_pool()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
