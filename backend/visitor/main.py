"""
Visitor Relay API
FastAPI application that emails visitor photo captures to the site owner.
"""

import logging
import os
import socket
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from visitor.config import get_cors_origins, get_max_body_bytes, get_static_dir
from visitor.routers import submit

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


def _is_usable_lan_ip(ip: str) -> bool:
    """Return True for addresses other devices on the LAN can reach."""
    # 172.x is the Docker bridge, 192.168.65.x is Docker Desktop's host alias
    return not ip.startswith(("127.", "172.", "192.168.65."))


def get_local_ip() -> Optional[str]:
    """
    Best-effort guess at the host's LAN address for the startup banner.

    HOST_IP wins when set (containers cannot see the host's address).
    Otherwise a UDP "connect" lets the OS pick the outbound interface; no
    packet is sent. Returns None when nothing usable is found.
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

    return None


app = FastAPI(
    title="Visitor Relay API",
    description="Relays visitor photo captures as email notifications",
    version="0.1.0",
)

# The landing page may be served from another origin during development
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def limit_body_size(request: Request, call_next):
    """Reject bodies whose declared length exceeds MAX_BODY_BYTES with 413."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit():
        if int(content_length) > get_max_body_bytes():
            return JSONResponse(status_code=413, content={"error": "Payload too large"})
    return await call_next(request)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Report malformed bodies as 400 with an ``error`` key.

    FastAPI's default is a 422 with a ``detail`` list; clients of this API
    only ever look at ``error`` and ``details``.
    """
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": details},
    )


# Include routers
app.include_router(submit.router, tags=["submit"])


@app.on_event("startup")
async def log_startup_urls() -> None:
    """
    Log the URLs the server is reachable at.

    The port comes from HOST_PORT so Docker-mapped ports are reported
    correctly; defaults to 3000, the port the landing page expects.
    """
    host_port = os.getenv("HOST_PORT", "3000")
    local_ip = get_local_ip()
    network_line = (
        f"  Network: http://{local_ip}:{host_port}"
        if local_ip
        else "  Network: (unavailable)"
    )
    logger.info(
        "Server running at:\n"
        "  Local:   http://localhost:%s\n"
        "%s",
        host_port,
        network_line,
    )


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/")
async def index():
    """Serve the landing page."""
    index_path = get_static_dir() / "index.html"
    if not index_path.is_file():
        raise HTTPException(status_code=404, detail="Landing page not found")
    return FileResponse(index_path)


# Static assets last so the API routes above take precedence
app.mount(
    "/",
    StaticFiles(directory=get_static_dir(), check_dir=False),
    name="static",
)
