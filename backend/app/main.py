"""
Ratna Invoice Engine API
FastAPI front for the jewelry pricing engine: line item pricing, invoice
totals (margin, GST, shipping, currency) and invoice numbering. Stateless:
persistence, rendering and storage live in other services.
"""
import os
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import LOG_JSON, LOG_LEVEL
from app.services.logging_config import setup_logging
from app.services.middleware import RequestTimingMiddleware
from app.api.pricing_routes import router as pricing_router

setup_logging(level=LOG_LEVEL, json_output=LOG_JSON)
logger = logging.getLogger("ratna-api")

_PROCESS_START = time.monotonic()

app = FastAPI(
    title="Ratna Invoice Engine API",
    version="1.0.0",
    description="Pricing and invoice computation for jewelry, loose diamonds and gemstones",
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


_cors_default = "http://localhost:3000,http://localhost:8080"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
)
app.add_middleware(SecurityHeadersMiddleware)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

app.include_router(pricing_router)


@app.get("/health")
async def health_check():
    return {
        "status": "ok",
        "uptime_s": round(time.monotonic() - _PROCESS_START, 1),
    }
