import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import models  # noqa: F401  registers tables on Base.metadata
from .config import ALLOWED_ORIGINS, SLOW_REQUEST_THRESHOLD
from .database import Base, SessionLocal, engine
from .domain.earnings import router as earnings_router
from .domain.scheduling import router as scheduling_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Booking engine starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info(f"✅ Booking tables ready ({len(Base.metadata.tables)} tables)")
    except SQLAlchemyError as e:
        logger.error(f"❌ Could not prepare booking tables: {e}")
        raise

    yield
    logger.info("👋 Booking engine shutting down...")


app = FastAPI(title="Booking Engine API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report a missing tenant header as 400 rather than a generic 422"""
    # Validator errors carry the raised ValueError in ctx, which json cannot encode
    errors = jsonable_encoder(exc.errors())
    if any("x-business-id" in str(error.get("loc", "")).lower() for error in errors):
        logger.warning(f"⚠️ Missing or invalid X-Business-Id header for {request.url.path}")
        return JSONResponse(
            status_code=400,
            content={"detail": "X-Business-Id header is required and must be an integer."},
        )

    logger.warning(f"⚠️ Invalid request body for {request.url.path}: {errors}")
    return JSONResponse(status_code=422, content={"detail": errors})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"❌ {request.method} {request.url.path} failed: {e}")
        raise

    elapsed = time.perf_counter() - started
    if elapsed > SLOW_REQUEST_THRESHOLD:
        logger.warning(f"🐌 {request.method} {request.url.path} took {elapsed:.2f}s ({response.status_code})")
    return response


logger.info(f"🌐 CORS allowed origins: {ALLOWED_ORIGINS}")
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(scheduling_router)
app.include_router(earnings_router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """Check that the booking database answers a trivial query"""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except SQLAlchemyError as e:
        logger.error(f"❌ Database health check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    finally:
        db.close()
