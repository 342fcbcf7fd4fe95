# app/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api import provider, session
from app.config import settings
from app.database import Base, engine
from app.exceptions import DomainException, ValidationException

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create database tables (alembic manages them outside development)
if settings.APP_ENV == "development":
    Base.metadata.create_all(bind=engine)

# Initialize FastAPI app
app = FastAPI(title="Mentor Sessions API")

# API routers
app.include_router(session.router)   # /sessions/*
app.include_router(provider.router)  # /providers/*


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are validation errors (400), same shape as domain errors."""
    error = ValidationException(
        "Request validation failed",
        code="VALIDATION_ERROR",
        details={
            "errors": [
                {
                    "field": ".".join(str(loc) for loc in e["loc"]),
                    "message": e["msg"],
                    "type": e["type"],
                }
                for e in jsonable_encoder(exc.errors())
            ],
        },
    )
    logger.info("%s %s -> %s: %s", request.method, request.url.path, error.code, error.details)
    return JSONResponse(status_code=error.status_code, content={"detail": error.to_dict()})


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "message": "Mentor Sessions API is running",
        "version": "1.0.0",
    }
