"""
Tableside - Main Application Entry Point
Guest sessions, comandas and service requests for QR table service
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import structlog

from tableside.core.config import get_settings
from tableside.core.database import init_db
from tableside.core.errors import DomainError, ErrorCode
from tableside.api import clients, comandas, kitchen_webhook, ratings, service_requests, tables

settings = get_settings()

logging.basicConfig(
    format="%(message)s",
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Initializing Tableside backend")
    if settings.AUTO_CREATE_TABLES:
        init_db()
    else:
        logger.info("Database managed by Alembic migrations")

    yield

    # Shutdown
    logger.info("Shutting down Tableside backend")


# Create FastAPI application
app = FastAPI(
    title="Tableside API",
    description="QR table service: guest sessions, comandas, service requests and waiter ratings",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure middleware stack
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code.value}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": ErrorCode.INTERNAL_ERROR.value, "message": "Internal server error"},
    )


# Include routers
prefix = settings.API_V1_PREFIX
app.include_router(tables.router, prefix=f"{prefix}/tables", tags=["tables"])
app.include_router(clients.router, prefix=f"{prefix}/clients", tags=["clients"])
app.include_router(comandas.router, prefix=f"{prefix}/comandas", tags=["comandas"])
app.include_router(service_requests.router, prefix=f"{prefix}/service-requests", tags=["service-requests"])
app.include_router(ratings.router, prefix=f"{prefix}/ratings", tags=["ratings"])
app.include_router(kitchen_webhook.router, prefix=f"{prefix}/kitchen", tags=["kitchen"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "tableside-api"}


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Tableside API",
        "version": "1.0.0",
        "docs": "/docs",
    }


def run():
    import uvicorn
    uvicorn.run(
        "tableside.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level="info",
    )


if __name__ == "__main__":
    run()
