"""
Compile Router
Build one cargo package from an uploaded tar archive.

POST /compile?crate_name=<name>   body: tar archive (application/x-tar)

  200  application/octet-stream, artifact bytes, plus exactly one of
       X-Rlib-File: <file name>   (library crate)
       X-Binary-File: <crate>     (binary crate)
  400  bad crate name, body or archive       (text/plain)
  413  body above MAX_BODY_BYTES             (text/plain)
  499  client disconnected mid-build; cargo is killed
  500  cargo failure / no artifact / I/O     (text/plain, cargo stderr verbatim)

Errors are raised as CompileError and rendered by the handler in app.main.
"""
import asyncio
import logging
import threading
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from crate_builder.core.intake import parse_crate_name, read_body  # type: ignore
from crate_builder.core.toolchain import Compiler  # type: ignore
from crate_builder.io.schema import BuildRequest  # type: ignore
from crate_builder.policy.profile import Profile  # type: ignore
from crate_builder.runner import run_compile  # type: ignore

from app.dependencies import get_compiler, get_profile

logger = logging.getLogger(__name__)

ARTIFACT_MEDIA_TYPE = "application/octet-stream"

# Seconds between client-disconnect checks while a build runs.
DISCONNECT_POLL_INTERVAL = 0.5


async def watch_disconnect(
    request: Request,
    cancel: threading.Event,
    interval: float = DISCONNECT_POLL_INTERVAL,
) -> None:
    """Set *cancel* once the client has gone away.  Returns early if already set."""
    while not cancel.is_set():
        if await request.is_disconnected():
            logger.warning("Client disconnected from %s; cancelling build", request.url.path)
            cancel.set()
            return
        await asyncio.sleep(interval)


# =============================================================================
# Router
# =============================================================================

router = APIRouter()


@router.post(
    "/compile",
    response_class=Response,
    responses={
        200: {"content": {ARTIFACT_MEDIA_TYPE: {}}, "description": "Compiled artifact"},
        400: {"content": {"text/plain": {}}, "description": "Malformed request or archive"},
        413: {"content": {"text/plain": {}}, "description": "Request body too large"},
        499: {"content": {"text/plain": {}}, "description": "Client disconnected, build cancelled"},
        500: {"content": {"text/plain": {}}, "description": "Build or internal failure"},
    },
)
async def compile_crate(
    request: Request,
    crate_name: Optional[str] = Query(None, description="cargo package to build (-p)"),
    profile: Profile = Depends(get_profile),
    compiler: Compiler = Depends(get_compiler),
) -> Response:
    """
    Unpack the archive into a fresh temp dir, run
    ``cargo build -p <crate_name> --offline`` there and return the
    produced ``.rlib`` (checked first) or executable.
    """
    name = parse_crate_name(crate_name)
    logger.info("Received /compile request for crate: %s", name)

    payload = await read_body(
        request.stream(),
        declared_length=request.headers.get("content-length"),
        max_bytes=profile.max_body_bytes,
    )
    build = BuildRequest(crate_name=name, payload=payload)

    # Extraction, cargo and the artifact read all block; keep them off the loop.
    cancel = threading.Event()
    watcher = asyncio.create_task(watch_disconnect(request, cancel))
    try:
        outcome = await run_in_threadpool(
            run_compile, build, compiler, profile, cancel=cancel,
        )
    finally:
        cancel.set()
        watcher.cancel()

    return Response(
        content=outcome.artifact.data,
        media_type=ARTIFACT_MEDIA_TYPE,
        headers=outcome.response_headers(),
    )
