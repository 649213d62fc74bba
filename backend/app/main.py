# app/main.py
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Optional
import logging
from datetime import datetime, timedelta
from contextlib import asynccontextmanager
from dotenv import load_dotenv

load_dotenv()

from .core.config import Settings, settings as default_settings
from .core.dependencies import require_api_key
from .core.exceptions import (
    EVAException,
    eva_exception_handler,
    request_validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler
)
from .core.llm_providers import create_llm_manager
from .api.middleware import LoggingMiddleware, SecurityHeadersMiddleware, SessionMiddleware
from .middleware.rate_limit import RateLimitMiddleware, create_redis_client
from .services.chat_orchestrator import ChatOrchestrator
from .services.code_generator import CodeGenerator
from .services.conversation_memory import ConversationMemory
from .services.document_processor import DocumentProcessor
from .services.erp_analyzer import ERPAnalyzer
from .services.export_service import ExportService
from .services.maintenance import PeriodicTask
from .services.model_client import ModelClient
from .utils.prompts import prompt_builder

# Secure logging configuration
from .utils.logging_filter import setup_secure_logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

setup_secure_logging()

logger = logging.getLogger(__name__)


def build_services(app: FastAPI, settings: Settings, model_client: Optional[ModelClient] = None) -> None:
    """Create the service graph and attach it to ``app.state``"""
    if model_client is None:
        model_client = ModelClient(create_llm_manager(settings), default_timeout=settings.LLM_TIMEOUT)

    memory = ConversationMemory(
        max_history_length=settings.MAX_HISTORY_LENGTH,
        session_timeout=timedelta(hours=settings.SESSION_TIMEOUT_HOURS),
    )

    app.state.settings = settings
    app.state.model_client = model_client
    app.state.memory = memory
    app.state.orchestrator = ChatOrchestrator(
        memory,
        model_client,
        prompt_builder,
        history_window=settings.CHAT_HISTORY_WINDOW,
        timeout_seconds=settings.LLM_TIMEOUT,
    )
    app.state.analyzer = ERPAnalyzer(model_client, prompt_builder, memory)
    app.state.code_generator = CodeGenerator(model_client, prompt_builder, memory)
    app.state.document_processor = DocumentProcessor(
        settings.UPLOAD_DIR,
        model_client,
        memory,
        max_upload_size=settings.MAX_UPLOAD_SIZE,
        max_files=settings.MAX_UPLOAD_FILES,
        retention=timedelta(hours=settings.UPLOAD_RETENTION_HOURS),
    )
    app.state.export_service = ExportService(memory)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: service graph and background sweepers"""
    settings: Settings = app.state.settings
    logger.info(f"{settings.APP_NAME} starting...")

    build_services(app, settings, getattr(app.state, "model_client_override", None))

    app.state.memory.start_cleanup(settings.SESSION_CLEANUP_INTERVAL_SECONDS)
    upload_cleanup = PeriodicTask(
        "upload-cleanup",
        app.state.document_processor.cleanup_old_files,
        settings.UPLOAD_CLEANUP_INTERVAL_SECONDS,
    )
    upload_cleanup.start()

    logger.info(f"Application startup completed - LLM provider: {app.state.model_client.info().get('provider')}")

    yield

    logger.info("Application shutting down...")
    await upload_cleanup.stop()
    await app.state.memory.shutdown()
    logger.info("Application shutdown completed")


def create_app(settings: Optional[Settings] = None, model_client: Optional[ModelClient] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration, defaults to the environment-derived settings
        model_client: Replacement model client, used by tests
    """
    settings = settings or default_settings

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        description="ERP consulting assistant with conversation memory, document analysis and export",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.model_client_override = model_client

    # Middleware runs in reverse order of registration
    app.add_middleware(
        RateLimitMiddleware,
        redis_client=create_redis_client(settings.REDIS_URL),
        default_limit=settings.RATE_LIMIT_PER_MINUTE,
        default_window=60,
        endpoint_limits={
            f"{settings.API_PREFIX}/chat": (settings.CHAT_RATE_LIMIT, settings.CHAT_RATE_WINDOW_SECONDS),
            f"{settings.API_PREFIX}/upload": (settings.UPLOAD_RATE_LIMIT, settings.UPLOAD_RATE_WINDOW_SECONDS),
        }
    )
    app.add_middleware(SessionMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Session-ID", "X-Request-ID", "Content-Disposition"]
    )

    app.add_exception_handler(EVAException, eva_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/")
    async def root():
        """Service information"""
        return {
            "message": f"Welcome to {settings.APP_NAME} API",
            "version": settings.APP_VERSION,
            "status": "running",
            "api_base": settings.API_PREFIX,
            "endpoints": {
                "chat": f"{settings.API_PREFIX}/chat",
                "export": f"{settings.API_PREFIX}/export",
                "upload": f"{settings.API_PREFIX}/upload",
                "health": "/health"
            },
            "timestamp": datetime.now().isoformat()
        }

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint"""
        return {
            "status": "healthy",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "active_sessions": app.state.memory.session_count(),
            "timestamp": datetime.now().isoformat()
        }

    @app.get("/health/detailed")
    async def detailed_health_check():
        """Health check with provider and host memory details"""
        import psutil

        memory_info = psutil.virtual_memory()
        process = psutil.Process()
        provider = app.state.model_client.info()

        return {
            "status": "healthy" if memory_info.percent < 90 else "degraded",
            "timestamp": datetime.now().isoformat(),
            "llm": provider,
            "sessions": {
                "active": app.state.memory.session_count(),
                "max_history_length": settings.MAX_HISTORY_LENGTH,
                "timeout_hours": settings.SESSION_TIMEOUT_HOURS
            },
            "memory": {
                "total_gb": round(memory_info.total / (1024**3), 2),
                "available_gb": round(memory_info.available / (1024**3), 2),
                "percent_used": memory_info.percent,
                "process_rss_mb": round(process.memory_info().rss / (1024**2), 1),
                "status": "healthy" if memory_info.percent < 80 else "warning"
            }
        }

    # API router registration
    from app.api.v1 import chat, export, upload

    api_key_guard = [Depends(require_api_key)]
    app.include_router(chat.router, prefix=f"{settings.API_PREFIX}/chat", tags=["chat"], dependencies=api_key_guard)
    app.include_router(export.router, prefix=f"{settings.API_PREFIX}/export", tags=["export"], dependencies=api_key_guard)
    app.include_router(upload.router, prefix=f"{settings.API_PREFIX}/upload", tags=["upload"], dependencies=api_key_guard)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=default_settings.DEBUG,
        log_level="info"
    )
