import os
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from datetime import datetime, timezone

from app.config import setup_logging, ALLOWED_ORIGINS
from app.middleware.error_handler import (
    plan_parse_exception_handler, request_validation_exception_handler, traceback_exception_handler
)
from app.routes import plans
from database import create_db_and_tables
from services.error_types import PlanParseError

setup_logging()
logger = logging.getLogger(__name__)

if not os.getenv("OPENAI_API_KEY"):
    logger.warning("OPENAI_API_KEY not set; plan parsing will fail with BACKEND_UNAVAILABLE")

app = FastAPI(
    title="PlanScope API",
    version="1.0.0",
    description="Blueprint parsing into reviewable rooms and unpriced line items"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(PlanParseError, plan_parse_exception_handler)
app.add_exception_handler(Exception, traceback_exception_handler)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"REQUEST: {request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"RESPONSE: {response.status_code}")
    return response


@app.on_event("startup")
async def startup_event():
    """Initialize database tables"""
    logger.info("Initializing database tables...")
    create_db_and_tables()
    logger.info("Database tables initialized")


app.include_router(plans.router, prefix="/api/v1/plans")


@app.get("/health")
async def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
