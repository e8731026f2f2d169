"""
FixLocal Backend API
FastAPI application that routes civic issue reports to local authorities.
"""

import logging
import os
import socket
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.routers import reports
from app.db import supabase_admin
from app.services.authority import AuthorityLookupError
from app.services.email_sender import EmailDeliveryError
from app.services.report_repository import ReportRepositoryError
from app.services.storage import PhotoUploadError, get_bucket_name

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


def _is_usable_lan_ip(ip: str) -> bool:
    """Return True if the IP is a usable LAN address (not loopback, not Docker internal)."""
    if ip.startswith("127."):
        return False
    # Docker bridge network
    if ip.startswith("172."):
        return False
    # Docker Desktop for Mac resolves host.docker.internal to 192.168.65.x
    if ip.startswith("192.168.65."):
        return False
    return True


def get_local_ip() -> Optional[str]:
    """
    Detect the host machine's LAN IP so a phone on the same network can reach
    the API during development.

    Detection order:
    0. ``HOST_IP`` environment variable (containers can't see the host's LAN IP).
    1. UDP connect trick: OS picks the outbound interface.
    2. gethostbyname fallback.

    Returns None if every method fails so callers can degrade gracefully.
    """
    host_ip = os.getenv("HOST_IP", "").strip()
    if host_ip:
        return host_ip

    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("8.8.8.8", 80))
            ip = s.getsockname()[0]
            if _is_usable_lan_ip(ip):
                return ip
    except OSError:
        pass

    try:
        ip = socket.gethostbyname(socket.gethostname())
        if ip and _is_usable_lan_ip(ip):
            return ip
    except OSError:
        pass

    return None


app = FastAPI(
    title="FixLocal API",
    description="Civic issue reporting: authority lookup, AI email drafts and delivery",
    version="0.1.0",
)


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes the Expo web dev server (http://localhost:8081 and
    http://localhost:19006) and the same ports on the detected LAN IP.
    Additional origins come from CORS_ORIGINS (comma-separated). Duplicates
    are removed while preserving order.
    """
    dev_ports = ["8081", "19006"]
    always_included = [f"http://localhost:{port}" for port in dev_ports]

    local_ip = get_local_ip()
    if local_ip:
        always_included.extend(f"http://{local_ip}:{port}" for port in dev_ports)

    extra_origins: List[str] = []
    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        extra_origins = [o.strip() for o in cors_env.split(",") if o.strip()]

    seen: set = set()
    origins: List[str] = []
    for origin in always_included + extra_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)

    return origins


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(reports.router, prefix="/api", tags=["reports"])


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed form/query input is a 400, like every other validation failure."""
    return JSONResponse(
        status_code=400,
        content={"detail": reports.validation_error_detail(exc.errors())},
    )


@app.exception_handler(AuthorityLookupError)
@app.exception_handler(ReportRepositoryError)
@app.exception_handler(PhotoUploadError)
@app.exception_handler(EmailDeliveryError)
async def transport_error_handler(request: Request, exc: Exception):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.on_event("startup")
async def log_startup_urls() -> None:
    """
    Log the URLs the API is accessible at so developers know where to point
    the mobile app. The port comes from ``HOST_PORT`` (default 8000).
    """
    host_port = os.getenv("HOST_PORT", "8000")
    local_ip = get_local_ip()
    network_line = (
        f"  Network: http://{local_ip}:{host_port}"
        if local_ip
        else "  Network: (unavailable)"
    )
    logger.info(
        "FixLocal API running at:\n"
        "  Local:   http://localhost:%s\n"
        "%s",
        host_port,
        network_line,
    )


@app.get("/")
async def root():
    return {"message": "FixLocal API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """
    Test the Supabase database connection by reading one authorities row.
    Returns 503 on failure.
    """
    if supabase_admin is None:
        raise HTTPException(
            status_code=503,
            detail="Database client unavailable: SUPABASE_SERVICE_KEY is not configured",
        )

    try:
        supabase_admin.table("authorities").select("id").limit(1).execute()
        return {"status": "ok", "database": "reachable"}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(exc)}",
        )


@app.get("/health/storage")
async def health_storage():
    """
    Test Supabase Storage access and verify the photo bucket exists.
    Returns 503 if storage is unreachable or the bucket is missing.
    """
    if supabase_admin is None:
        raise HTTPException(
            status_code=503,
            detail="Storage client unavailable: SUPABASE_SERVICE_KEY is not configured",
        )

    bucket = get_bucket_name()
    try:
        buckets = supabase_admin.storage.list_buckets()
        bucket_names = [b.name for b in buckets]

        if bucket not in bucket_names:
            raise HTTPException(
                status_code=503,
                detail=f"Storage bucket '{bucket}' not found",
            )

        return {"status": "ok", "storage": "reachable", "bucket": bucket}
    except HTTPException:
        raise
    except Exception as exc:
        logger.error(f"Storage health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Storage check failed: {str(exc)}",
        )
