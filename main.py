import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from exceptions import (
    ChartCalculationError,
    TimeConversionError,
    UnsupportedHouseSystemError,
)
from routers import get_calculators, router
from settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Builds the adapter now; a missing ephemeris file stops startup here.
    calculators = get_calculators()
    logger.info("Ephemeris ready (%s)", calculators.natal.adapter.name)
    yield


app = FastAPI(
    lifespan=lifespan,
    title="Chart Calculation API",
    description="Natal, transit and composite chart calculation using Swiss Ephemeris",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, error: str, message: str, detail=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "detail": detail
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold the raw exception from a validator
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


# Exception Handlers
@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions raised while building chart inputs."""
    return _error(422, "ValidationError", str(exc))


@app.exception_handler(TimeConversionError)
async def time_conversion_handler(request: Request, exc: TimeConversionError):
    """Handle invalid date, time or timezone errors."""
    return _error(422, "TimeConversionError", str(exc))


@app.exception_handler(UnsupportedHouseSystemError)
async def unsupported_house_system_handler(request: Request, exc: UnsupportedHouseSystemError):
    """Handle house systems that cannot assign houses."""
    return _error(422, "UnsupportedHouseSystemError", str(exc), {"house_system": exc.house_system})


@app.exception_handler(ChartCalculationError)
async def chart_calculation_error_handler(request: Request, exc: ChartCalculationError):
    """Handle chart calculation errors. Bad input is reported as 422, solver failures as 500."""
    cause = exc.root_cause
    return _error(
        422 if exc.is_input_error else 500,
        "ChartCalculationError",
        str(exc),
        {"chart_type": exc.chart_type, "cause": type(cause).__name__ if cause else None}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    return _error(422, "ValidationError", "Request validation failed", jsonable_errors(exc))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other unexpected exceptions."""
    logger.exception("Unhandled error on %s", request.url.path)
    return _error(500, "InternalServerError", "An unexpected error occurred")


# Include API router
app.include_router(router, prefix="/api/v1", tags=["API"])


# Root endpoints
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": "Chart Calculation API",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}
