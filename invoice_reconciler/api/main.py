from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from ..core.logging import setup_logging
from ..core.config import settings
from ..core.errors import (
    DuplicateKeyError,
    ExtractionUnavailableError,
    InvoiceAlreadyDecidedError,
    MalformedFieldError,
    NotFoundError,
    NotFullyRegisteredError,
    ReconcilerError,
    RegistryUnavailableError,
    ValidationError,
)
from .routers import health, invoice, registry

logger = setup_logging()
app = FastAPI(title="Invoice Registration Reconciler")

ERROR_STATUS = {
    MalformedFieldError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFullyRegisteredError: status.HTTP_409_CONFLICT,
    DuplicateKeyError: status.HTTP_409_CONFLICT,
    InvoiceAlreadyDecidedError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    RegistryUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ExtractionUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(ReconcilerError)
async def reconciler_exception_handler(request: Request, exc: ReconcilerError):
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    log = logger.error if status_code >= 500 else logger.warning
    log("Request failed", path=request.url.path, error=type(exc).__name__, detail=exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# Add custom exception handler for validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error("Validation error", path=request.url.path, errors=str(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors(), "body": str(await request.body())},
    )


# Configure CORS to allow the review screen access
# CORS_ORIGINS can be set in .env as comma-separated list
allowed_origins = [origin.strip() for origin in settings.cors_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(invoice.router)
app.include_router(registry.suppliers_router)
app.include_router(registry.products_router)
