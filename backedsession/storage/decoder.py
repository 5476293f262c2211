"""
Retrying Decoder: Tolerates Torn Reads

Records are replaced whole without file locking. A reader racing a foreign
writer can observe a truncated file, which shows up as JSON that ends too
early. Such reads are retried after a fixed delay; if the record is still
malformed once the attempts are used up, it is treated as corrupt, deleted,
and reported as STORAGE_PERMANENT_CORRUPT_READ.

Malformed content that does not look truncated (garbage mid-document, a
top-level value that is not an object) is reported immediately as
STORAGE_DECODE_FAILED and left on disk.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from backedsession.core.errors import StorageError
from backedsession.core.record import SessionRecord
from backedsession.core.types import Result, Ok, Err
from backedsession.reliability.retry import RetryContext, RetryPolicy
from backedsession.storage.keyspace import KeySpace

logger = logging.getLogger(__name__)

_LITERALS = ("true", "false", "null")
_NUMBER_FRAGMENT = re.compile(r"-?\d*(\.\d*)?([eE][-+]?\d*)?")
_ESCAPE_FRAGMENT = re.compile(r"\\?u[0-9a-fA-F]{0,4}")


def _is_cut_number(text: str, error: json.JSONDecodeError, tail: str) -> bool:
    if not _NUMBER_FRAGMENT.fullmatch(tail):
        return False
    # '1.' and '1e' fail after the digits the scanner already consumed
    if tail[0] in ".eE":
        return error.msg.startswith("Expecting ','") and text[error.pos - 1:error.pos].isdigit()
    return error.msg.startswith("Expecting value")


def _looks_truncated(text: str, error: json.JSONDecodeError) -> bool:
    """True when the parser failed because the document stopped early."""
    if error.msg.startswith("Unterminated string"):
        return True

    tail = text[error.pos:].rstrip()
    if not tail:
        return True

    if error.msg.startswith("Invalid \\uXXXX escape"):
        return _ESCAPE_FRAGMENT.fullmatch(tail) is not None

    # '{"a": tru' fails at the start of the cut literal, not at the end
    if any(lit.startswith(tail) for lit in _LITERALS):
        return True

    return _is_cut_number(text, error, tail)


def decode_payload(key: str, raw: bytes, attempt: int = 1) -> Result[dict[str, Any], StorageError]:
    """
    Decode stored bytes into a payload mapping.

    Returns Err with a transient error for torn content and a
    decode_failed error for anything else.
    """
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        if e.reason == "unexpected end of data":
            return Err(StorageError.transient_corrupt_read(key, attempt, cause=e))
        return Err(StorageError.decode_failed(key, "invalid UTF-8", cause=e))

    if not text.strip():
        return Err(StorageError.transient_corrupt_read(key, attempt))

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        if _looks_truncated(text, e):
            return Err(StorageError.transient_corrupt_read(key, attempt, cause=e))
        return Err(StorageError.decode_failed(key, e.msg, cause=e))

    if not isinstance(data, dict):
        return Err(StorageError.decode_failed(
            key, f"expected a JSON object, got {type(data).__name__}"
        ))

    return Ok(data)


class RetryingDecoder:
    """
    Reads and decodes one record, retrying torn reads.

    ``retry_limit`` counts total reads: a record that is torn for
    ``retry_limit - 1`` reads and valid on the last one decodes fine.
    """

    __slots__ = ("_keyspace", "_policy")

    def __init__(
        self,
        keyspace: KeySpace,
        retry_limit: int,
        retry_wait_ms: int,
    ) -> None:
        self._keyspace = keyspace
        self._policy = RetryPolicy.fixed(attempts=retry_limit, delay_ms=retry_wait_ms)

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def read(
        self,
        key: str,
        retries_remaining: Optional[int] = None,
    ) -> Result[Optional[SessionRecord], StorageError]:
        """
        Read and decode the record for ``key``.

        Args:
            key: Session key
            retries_remaining: Override for the retry budget (default from policy)

        Returns:
            Ok(record), Ok(None) when absent, or Err(StorageError)
        """
        path_result = self._keyspace.path_for(key)
        if path_result.is_err():
            return path_result
        path = path_result.unwrap()

        policy = self._policy
        if retries_remaining is not None:
            policy = policy.with_max_retries(retries_remaining)

        async with RetryContext(policy) as ctx:
            for attempt in ctx.attempts():
                raw_result = self._keyspace.read_file(path)
                if raw_result.is_err():
                    return raw_result

                raw = raw_result.unwrap()
                if raw is None:
                    return Ok(None)

                decoded = decode_payload(key, raw, attempt=attempt + 1)
                if decoded.is_ok():
                    ctx.success()
                    return Ok(SessionRecord(decoded.unwrap()))

                error = decoded.error
                if not error.is_transient:
                    return decoded

                logger.debug(
                    f"Torn read of '{key}'",
                    extra={"key": key, "attempt": attempt + 1},
                )
                await ctx.fail(error)

        deleted = self._keyspace.delete_file(path)
        if deleted.is_err():
            return deleted

        logger.warning(
            f"Deleted corrupt session '{key}' after {ctx.failures} attempts",
            extra={"key": key, "attempts": ctx.failures},
        )
        return Err(StorageError.permanent_corrupt_read(
            key,
            attempts=ctx.failures,
            cause=ctx.last_error,
        ))
