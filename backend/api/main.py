"""Main FastAPI application"""
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging
import time
from slowapi.middleware import SlowAPIMiddleware

from api.config import settings
from api.ratelimit import limiter
from api.routers import predictions
from api.scheduler import start_scheduler, stop_scheduler
from api.schemas.errors import ErrorCode
from api.utils.exceptions import StockPulseException
import stockpulse.log_config  # noqa: F401  configures loguru sinks on import
from stockpulse.db.session import check_db_health, init_db
from stockpulse.utils.errors import ConfigurationError, StockPulseError

logger = logging.getLogger(__name__)
api_logger = logging.getLogger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting StockPulse API...")

    init_db()
    logger.info("Database tables created/verified")

    start_scheduler()

    yield

    logger.info("Shutting down StockPulse API...")
    stop_scheduler()


# Create FastAPI app
app = FastAPI(
    title=settings.API_TITLE,
    description="Daily multi-horizon stock price predictions with accuracy tracking.",
    version=settings.API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "predictions", "description": "Prediction generation, lookup and accuracy statistics"},
    ]
)

# Add SlowAPI state and middleware
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["content-type", "authorization"],
)


# Access logging middleware
@app.middleware("http")
async def access_log_middleware(request: Request, call_next):
    """Log all API requests with timing"""
    t0 = time.time()
    response = await call_next(request)
    ms = int((time.time() - t0) * 1000)

    api_logger.info(f"{request.method} {request.url.path} {response.status_code} {ms}ms")

    return response


# Global exception handlers
@app.exception_handler(StockPulseException)
async def stockpulse_exception_handler(request: Request, exc: StockPulseException):
    """Handle custom StockPulse exceptions with standard format"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": str(exc.detail),
            "details": exc.details,
            "status_code": exc.status_code,
            **exc.extra,
        }
    )


@app.exception_handler(StockPulseError)
async def domain_error_handler(request: Request, exc: StockPulseError):
    """Domain errors that no router translated"""
    if isinstance(exc, ConfigurationError):
        logger.error(f"Configuration error: {exc.message}")
        status_code, error_code = status.HTTP_503_SERVICE_UNAVAILABLE, ErrorCode.SERVICE_UNAVAILABLE
    else:
        logger.error(f"Unhandled domain error: {exc.message}", exc_info=exc)
        status_code, error_code = status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorCode.INTERNAL_ERROR

    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": exc.message,
            "details": None,
            "status_code": status_code,
        }
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTPException with standard format"""
    # Map status codes to error codes
    error_code_map = {
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        429: ErrorCode.RATE_LIMIT_EXCEEDED,
        500: ErrorCode.INTERNAL_ERROR,
    }

    error_code = error_code_map.get(exc.status_code, "HTTP_ERROR")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": str(exc.detail),
            "details": getattr(exc, "details", None),
            "status_code": exc.status_code,
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors"""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": ErrorCode.VALIDATION_ERROR,
            "message": "Validation error",
            "details": {"errors": jsonable_errors(exc)},
            "status_code": 422,
        }
    )


def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Catch-all for unexpected errors"""
    logger.exception("Unhandled exception")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": ErrorCode.INTERNAL_ERROR,
            "message": "An unexpected error occurred",
            "details": None,  # Don't expose internal errors
            "status_code": 500,
        }
    )


# Include routers
app.include_router(predictions.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": "StockPulse API",
        "version": settings.API_VERSION,
        "status": "running"
    }


@app.get("/healthz")
def health_check():
    """Health check endpoint, including database connectivity"""
    db_health = check_db_health()
    status_code = 200 if db_health["status"] == "healthy" else 503
    return JSONResponse(
        status_code=status_code,
        content={"status": db_health["status"], "database": db_health},
    )
