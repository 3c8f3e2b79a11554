"""
Crate Worker API - Main Application
Remote cargo build worker: tar archive in, compiled artifact out.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import replace

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse

from crate_builder import BUILDER_NAME, BUILDER_VERSION  # type: ignore
from crate_builder.core.toolchain import CargoCompiler, capture_toolchain  # type: ignore
from crate_builder.errors import CompileError, InvalidRequest  # type: ignore
from crate_builder.policy.profile import Profile  # type: ignore

from app.config import Settings, settings
from app.routers import cargo

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
_log = logging.getLogger(__name__)


def build_profile(cfg: Settings) -> Profile:
    """Translate settings into the pipeline profile."""
    return replace(
        Profile.v0(),
        cargo_bin=cfg.CARGO_BIN,
        extra_args=tuple(cfg.CARGO_EXTRA_ARGS),
        build_timeout=cfg.BUILD_TIMEOUT or None,
        max_body_bytes=cfg.MAX_BODY_BYTES,
        workspace_root=cfg.WORKSPACE_ROOT,
    )


# =============================================================================
# Lifespan Event Handler
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown events"""
    profile = build_profile(settings)
    app.state.settings = settings
    app.state.profile = profile
    app.state.compiler = CargoCompiler(profile)

    toolchain = capture_toolchain(profile.cargo_bin)
    if not toolchain["available"]:
        _log.warning("'%s' not found on PATH; every build will fail", profile.cargo_bin)
    _log.info("Worker listening on %s (%s)", settings.base_url, toolchain["version"])
    yield
    _log.info("Worker stopped")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title=settings.API_TITLE,
    description="Remote build worker: POST a tar archive, get the compiled crate back",
    version=settings.API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


@app.exception_handler(CompileError)
async def compile_error_handler(request: Request, exc: CompileError):
    """Render any pipeline failure as plain text with its status and code."""
    level = logging.WARNING if exc.is_client_error else logging.ERROR
    _log.log(level, "%s failed: %s", request.url.path, exc.to_dict())
    return PlainTextResponse(
        exc.body,
        status_code=exc.status_code,
        headers={"X-Error-Code": exc.code.value},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Parameter binding failures are client errors: 400, plain text."""
    _log.warning(
        "400 on %s %s  errors=%s",
        request.method, request.url.path, exc.errors()[:3],
    )
    return await compile_error_handler(request, InvalidRequest(f"Invalid request: {exc.errors()}"))


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health")
def health_check(request: Request):
    """Health check endpoint.  Plain def: the first call spawns ``cargo --version``."""
    profile = request.app.state.profile
    toolchain = capture_toolchain(profile.cargo_bin)
    return {
        "status": "healthy" if toolchain["available"] else "degraded",
        "service": BUILDER_NAME,
        "builder_version": BUILDER_VERSION,
        "version": settings.API_VERSION,
        "profile_id": profile.profile_id,
        "cargo": toolchain,
    }


# =============================================================================
# Register Routers
# =============================================================================

app.include_router(cargo.router, tags=["compile"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
    )
