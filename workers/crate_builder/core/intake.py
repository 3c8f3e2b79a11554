"""
Intake — validate the crate name and drain the request body.

The body is drained fully into memory.  An optional byte cap guards
against unbounded accumulation; it is checked against the declared
Content-Length first and again while chunks arrive.
"""
import logging
from typing import AsyncIterable, Optional

from crate_builder.errors import (
    BodyReadError,
    CompileError,
    InvalidRequest,
    PayloadTooLarge,
)
from crate_builder.policy.naming import MAX_CRATE_NAME_LENGTH, is_valid_crate_name

logger = logging.getLogger(__name__)


def parse_crate_name(raw: Optional[str]) -> str:
    """Validate the ``crate_name`` query parameter."""
    if raw is None or not raw.strip():
        raise InvalidRequest("Missing required query parameter 'crate_name'")

    name = raw.strip()
    if not is_valid_crate_name(name):
        raise InvalidRequest(
            f"Invalid crate_name {name!r}: expected 1-{MAX_CRATE_NAME_LENGTH} "
            "characters from [A-Za-z0-9_-]",
            context={"crate_name": name},
        )
    return name


def _check_declared_length(declared: Optional[str], max_bytes: Optional[int]) -> None:
    if max_bytes is None or declared is None:
        return
    try:
        length = int(declared)
    except ValueError:
        raise InvalidRequest(f"Malformed Content-Length header: {declared!r}")
    if length > max_bytes:
        raise PayloadTooLarge(
            f"Request body of {length} bytes exceeds limit of {max_bytes} bytes"
        )


async def read_body(
    chunks: AsyncIterable[bytes],
    *,
    declared_length: Optional[str] = None,
    max_bytes: Optional[int] = None,
) -> bytes:
    """
    Collect an async byte stream into a single ``bytes`` object.

    Raises
    ------
    PayloadTooLarge
        Declared or received size is above *max_bytes*.
    BodyReadError
        The stream failed before it was fully drained (disconnect,
        transport error).
    """
    _check_declared_length(declared_length, max_bytes)

    buf = bytearray()
    try:
        async for chunk in chunks:
            buf.extend(chunk)
            if max_bytes is not None and len(buf) > max_bytes:
                raise PayloadTooLarge(
                    f"Request body exceeds limit of {max_bytes} bytes"
                )
    except CompileError:
        raise
    except Exception as e:
        logger.warning("Failed to collect request body after %d bytes: %r", len(buf), e)
        raise BodyReadError(f"Failed to collect body: {e}") from e

    return bytes(buf)

