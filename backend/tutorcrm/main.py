import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .db import Base, engine
from .errors import ValidationError, ReferenceNotFoundError, TransactionFailure
from .routers import students, subscriptions, lessons, payments


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


configure_logging()
logger = logging.getLogger(__name__)

# Create DB tables (DEV ONLY — disable in production, use Alembic instead)
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Tutoring Subscriptions API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --------------------------------------------------------
# ERRORS -> single message + status code
# --------------------------------------------------------
@app.exception_handler(ValidationError)
def validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(RequestValidationError)
def request_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{where}: {first.get('msg')}" if where else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"detail": message})


@app.exception_handler(ReferenceNotFoundError)
def reference_not_found(request: Request, exc: ReferenceNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(TransactionFailure)
def transaction_failure(request: Request, exc: TransactionFailure):
    logger.error("Transaction failed on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# --------------------------------------------------------
# ROUTES
# --------------------------------------------------------
app.include_router(students.router)
app.include_router(students.staff_router)
app.include_router(subscriptions.router)
app.include_router(lessons.router)
app.include_router(payments.router)


# --------------------------------------------------------
# ROOT ENDPOINT (for testing)
# --------------------------------------------------------
@app.get("/")
def root():
    return {"message": "Backend is running!"}
