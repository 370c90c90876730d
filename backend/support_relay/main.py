"""
FastAPI application entry point.
Builds every component once in the lifespan and shares them through
``app.state``.

Version: 1.0.0
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import APP_DESCRIPTION
from .agents import CustomerSupportAgent, ResponseResolver
from .api.routes import chat, faqs, health, sessions
from .config import EscalationSettings, Settings, get_escalation_settings, get_settings
from .escalation import EscalationDetector
from .faq import FAQIndex
from .llm import TextGenerator, create_text_generator
from .services import SessionSweeper
from .session import HistoryStore, SessionRegistry, create_history_store
from .utils.middleware import RateLimitMiddleware, RequestContextMiddleware
from .utils.telemetry import MetricsCollector, setup_telemetry

_startup_settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if _startup_settings.debug else _startup_settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)

logger = logging.getLogger(__name__)


def build_lifespan(
    settings: Settings,
    escalation_settings: EscalationSettings,
    generator: Optional[TextGenerator] = None,
    history_store: Optional[HistoryStore] = None,
    faq_index: Optional[FAQIndex] = None,
    start_sweeper: bool = True
):
    """
    Create the lifespan handler.

    Components passed in are used as-is; anything omitted is built from
    configuration.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # === STARTUP ===
        logger.info("=" * 60)
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        logger.info(f"Environment: {settings.environment.value}")
        logger.info("=" * 60)

        for warning in settings.validate_configuration():
            logger.warning(f"Configuration: {warning}")

        index = faq_index or FAQIndex.from_file(settings.faq_data_path or None)
        logger.info(f"✓ FAQ index loaded ({len(index)} entries)")

        store = history_store or create_history_store(settings)
        if await store.ping():
            logger.info(f"✓ History store: {type(store).__name__}")
        else:
            logger.warning(f"✗ History store {type(store).__name__} is not reachable")

        text_generator = generator or create_text_generator(settings)
        logger.info(f"✓ Text generator: {text_generator.name}")

        registry = SessionRegistry(store)
        detector = EscalationDetector(escalation_settings)
        resolver = ResponseResolver(index, store, detector, text_generator, settings)
        metrics = MetricsCollector()
        agent = CustomerSupportAgent(registry, store, resolver, metrics)

        app.state.settings = settings
        app.state.faq_index = index
        app.state.history_store = store
        app.state.generator = text_generator
        app.state.registry = registry
        app.state.metrics = metrics
        app.state.agent = agent

        sweeper = SessionSweeper(
            registry,
            interval=settings.session_cleanup_interval_seconds,
            max_age=settings.session_max_age_seconds
        )
        app.state.sweeper = sweeper
        if start_sweeper:
            sweeper.start()
            logger.info("✓ Session sweeper started")

        logger.info("✓ Application started successfully")

        yield  # === APPLICATION RUNS HERE ===

        # === SHUTDOWN ===
        logger.info("Shutting down application...")

        await sweeper.stop()

        try:
            await text_generator.close()
        except Exception as e:
            logger.error(f"Error closing text generator: {e}")

        try:
            await store.close()
        except Exception as e:
            logger.error(f"Error closing history store: {e}")

        logger.info("✓ Application shutdown complete")

    return lifespan


def create_app(
    settings: Optional[Settings] = None,
    escalation_settings: Optional[EscalationSettings] = None,
    generator: Optional[TextGenerator] = None,
    history_store: Optional[HistoryStore] = None,
    faq_index: Optional[FAQIndex] = None,
    start_sweeper: bool = True
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Application settings (default: environment)
        escalation_settings: Escalation settings (default: environment)
        generator: Text generator to use instead of the configured one
        history_store: History store to use instead of the configured one
        faq_index: FAQ index to use instead of loading the data file
        start_sweeper: Start the background session sweep

    Returns:
        Configured application
    """
    settings = settings or get_settings()
    escalation_settings = escalation_settings or get_escalation_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=APP_DESCRIPTION,
        lifespan=build_lifespan(
            settings,
            escalation_settings,
            generator=generator,
            history_store=history_store,
            faq_index=faq_index,
            start_sweeper=start_sweeper
        ),
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time", "X-RateLimit-Limit"]
    )

    app.add_middleware(RequestContextMiddleware)

    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            calls=settings.rate_limit_requests,
            period=settings.rate_limit_period,
            trust_forwarded=settings.rate_limit_trust_forwarded
        )

    if settings.enable_telemetry:
        setup_telemetry(app)

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(sessions.router, prefix=settings.api_prefix, tags=["Sessions"])
    app.include_router(chat.router, prefix=settings.api_prefix, tags=["Chat"])
    app.include_router(faqs.router, prefix=settings.api_prefix, tags=["FAQs"])

    @app.get("/", tags=["Root"])
    async def root(request: Request) -> Dict[str, Any]:
        """API information and status."""
        state = request.app.state
        stats: Dict[str, Any] = {}

        if hasattr(state, "history_store"):
            try:
                stats = await state.history_store.get_stats()
            except Exception as e:
                logger.warning(f"Failed to get history stats: {e}")

        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment.value,
            "status": "operational",
            "endpoints": {
                "docs": "/docs" if settings.debug else "disabled",
                "health": "/health",
                "metrics": "/metrics" if settings.enable_telemetry else "disabled",
                "api": settings.api_prefix
            },
            "provider": state.generator.name if hasattr(state, "generator") else None,
            "history": stats,
            "metrics": state.metrics.get_stats() if hasattr(state, "metrics") else {}
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Turn uncaught exceptions into a JSON 500."""
        request_id = getattr(request.state, "request_id", "unknown")

        logger.error(
            f"Unhandled exception in request {request_id}: {exc}",
            exc_info=True,
            extra={
                "path": request.url.path,
                "method": request.method,
                "client": request.client.host if request.client else "unknown"
            }
        )

        metrics = getattr(request.app.state, "metrics", None)
        if metrics is not None:
            metrics.record_error()

        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal server error",
                "message": str(exc) if settings.debug else "An unexpected error occurred",
                "request_id": request_id
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "support_relay.main:app",
        host=_startup_settings.api_host,
        port=_startup_settings.api_port,
        reload=_startup_settings.debug,
        log_level="debug" if _startup_settings.debug else "info",
        access_log=True
    )
