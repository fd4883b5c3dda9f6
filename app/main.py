from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.api.v1.router import api_router
from app.core.errors import OperationRejected, rejection_for_invalid_request
from app.database import init_db, async_session_factory


logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Configure logging from LOG_LEVEL
    - Create missing tables
    """
    configure_logging()
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)

    await init_db()

    yield

    logger.info("Shutting down...")


# OpenAPI Tags with detailed descriptions
OPENAPI_TAGS = [
    {"name": "Lanes", "description": "Approved origin -> destination routes"},
    {"name": "Vendors", "description": "Transport vendors and their approved lanes"},
    {"name": "Shipment Bids", "description": "Reverse auctions: offers, counter offers, finalization, dispatch"},
    {"name": "Notifications", "description": "In-app auction notifications"},
    {"name": "Realtime", "description": "Websocket change feed"},
]

FULL_API_DESCRIPTION = """
## LaneBid Freight Auctions API

Shippers post freight requests; transport vendors approved for the lane bid
them down. The lowest offer (L1) can be countered, finalized and dispatched.

### Auction lifecycle

`OPEN -> NEGOTIATING -> FINALIZED -> ASSIGNED`, with `CLOSED` on admin
cancellation or when the window ends without offers. Expiry is applied
whenever a bid is read.

### Authentication

Every endpoint except `/health` needs a bearer JWT with `sub`, `name` and
`role` (`admin` or `vendor`).

### Error Codes

Rejected operations return `{"code": ..., "message": ...}`:

| Code | Description |
|------|-------------|
| 401 | Unauthorized - Invalid/expired token |
| 403 | Forbidden - Wrong role, vendor not eligible, not the winning vendor |
| 404 | Not Found - Unknown lane, vendor or bid |
| 409 | Conflict - Duplicate lane or wrong auction state |
| 422 | Unprocessable Entity - Invalid city, amount, window or dispatch details |
| 503 | Service Unavailable - Change could not be persisted |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=FULL_API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
    swagger_ui_parameters={
        "deepLinking": True,
        "persistAuthorization": True,
    },
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


@app.exception_handler(OperationRejected)
async def operation_rejected_handler(request: Request, exc: OperationRejected):
    """Render domain rejections as {"code", "message"} with the mapped status."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Schema errors use the same {"code", "message"} envelope as domain rejections."""
    rejection = rejection_for_invalid_request(exc.errors())
    logger.info("Rejected %s %s: %s", request.method, request.url.path, rejection)
    return JSONResponse(status_code=rejection.status_code, content=rejection.to_dict())


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness plus a database check; 503 when the store is unreachable."""
    checks = {"database": "connected"}
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check failed: %s", e)
        checks["database"] = f"error: {e}"

    body = {
        "status": "healthy" if checks["database"] == "connected" else "unhealthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "auction_timezone": settings.AUCTION_TIMEZONE,
        "notifications_enabled": settings.NOTIFICATIONS_ENABLED,
        "checked_at": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
    if body["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=body)
    return body


@app.get("/", tags=["Root"])
async def root():
    """Service banner with links to the API docs."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "api": "/api/v1",
        "docs": "/docs",
    }
