"""
WalletWise - FastAPI Application

Main entry point for the backend API.
Provides payments, gateway webhooks, subscription status, tier-gated wallet
creation and a realtime subscription event stream.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from walletwise.config.settings import settings
from walletwise.infrastructure.exceptions import (
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    GatewayError,
    NotFoundError,
    SignatureInvalidError,
    UnsupportedOperationError,
    ValidationError,
    WalletWiseError,
    WebhookNotConfiguredError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info(f"WalletWise Backend starting in {settings.environment} mode...")

    from walletwise.infrastructure.db.database import init_db, close_db
    try:
        await init_db()
        logger.info("Database connection pool initialized")
    except Exception as e:
        logger.warning(f"Database initialization skipped: {e}")

    yield

    # Shutdown
    try:
        await close_db()
        logger.info("Database connection pool closed")
    except Exception as e:
        logger.warning(f"Database shutdown error: {e}")

    logger.info("WalletWise Backend shutting down...")


app = FastAPI(
    title="WalletWise",
    description="Personal finance backend: wallets, subscriptions and payments",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors and illegal tier transitions."""
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(UnsupportedOperationError)
async def unsupported_operation_handler(request: Request, exc: UnsupportedOperationError):
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    """Tier does not grant the feature (wallet limit, expired trial, Pro+ gate)."""
    return JSONResponse(status_code=403, content=exc.to_dict())


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle not found errors."""
    return JSONResponse(status_code=404, content=exc.to_dict())


@app.exception_handler(ConflictError)
async def conflict_error_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content=exc.to_dict())


@app.exception_handler(SignatureInvalidError)
async def signature_error_handler(request: Request, exc: SignatureInvalidError):
    """Webhook verification failed; nothing was processed."""
    logger.warning(f"Webhook verification failed on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(WebhookNotConfiguredError)
async def webhook_not_configured_handler(request: Request, exc: WebhookNotConfiguredError):
    logger.error(f"Webhook received on {request.url.path} but no secret is configured")
    return JSONResponse(status_code=500, content=exc.to_dict())


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    """Payment provider failed; safe to retry the whole request."""
    logger.error(f"Gateway error: {exc.message}")
    return JSONResponse(status_code=502, content=exc.to_dict())


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Configuration error: {exc.message} {exc.details}")
    return JSONResponse(status_code=500, content=exc.to_dict())


@app.exception_handler(WalletWiseError)
async def general_error_handler(request: Request, exc: WalletWiseError):
    """Handle all other application errors."""
    logger.error(f"Unhandled application error: {exc.message}")
    return JSONResponse(status_code=500, content=exc.to_dict())


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "walletwise"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "WalletWise API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from walletwise.api.routes import events, payments, subscriptions, wallets, webhooks  # noqa: E402

app.include_router(payments.router, prefix="/api/v1", tags=["Payments"])
app.include_router(webhooks.router, prefix="/api/v1", tags=["Webhooks"])
app.include_router(subscriptions.router, prefix="/api/v1", tags=["Subscriptions"])
app.include_router(wallets.router, prefix="/api/v1", tags=["Wallets"])
app.include_router(events.router, prefix="/api/v1", tags=["Events"])
