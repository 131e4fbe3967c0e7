"""
Progress Envelope Codec.

The envelope is the versioned wrapper exchanged with the remote store:

    {"revision": 3, "updatedAt": "2026-10-19T08:00:00.000Z", "state": {...}}

`decode` never raises: empty, corrupt and wrongly-shaped input
all come back as None so callers can treat them like "no data yet".
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any

from loguru import logger

from bangla10.core.dates import now_iso
from bangla10.core.errors import ShapeError, ValidationError


@dataclass
class Envelope:
    """A revision-stamped state document."""

    revision: int
    state: dict[str, Any]
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "revision": self.revision,
            "updatedAt": self.updated_at,
            "state": self.state,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


def encode(revision: int, state: dict[str, Any]) -> Envelope:
    """Wrap a state document, stamping `updatedAt` with the current instant."""
    return Envelope(revision=revision, state=state, updated_at=now_iso())


def parse_envelope(raw: Any) -> Envelope:
    """
    Strictly parse a raw envelope.

    Args:
        raw: JSON text or an already-decoded mapping

    Raises:
        ShapeError: if the input is not a usable envelope
    """
    if not raw:
        raise ShapeError("Envelope is empty")

    parsed = raw
    if isinstance(raw, (str, bytes)):
        try:
            parsed = json.loads(raw)
        except ValueError as e:
            raise ShapeError(f"Envelope is not valid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise ShapeError("Envelope is not an object")

    revision = parsed.get("revision")
    if isinstance(revision, bool) or not isinstance(revision, (int, float)):
        raise ShapeError("Envelope revision is not a number")
    if not math.isfinite(revision):
        raise ShapeError(f"Envelope revision is not finite: {revision}")

    state = parsed.get("state")
    if not isinstance(state, dict):
        raise ShapeError("Envelope state is not an object")

    updated_at = parsed.get("updatedAt")
    return Envelope(
        revision=int(revision),
        state=state,
        updated_at=updated_at if isinstance(updated_at, str) else None,
    )


def decode(raw: Any) -> Envelope | None:
    """Parse an envelope, returning None instead of raising on bad input."""
    try:
        return parse_envelope(raw)
    except ShapeError as e:
        logger.debug(f"Discarding envelope: {e}")
        return None


def snapshot(document: dict[str, Any]) -> dict[str, Any]:
    """Deep copy with JSON semantics (serialize, then deserialize)."""
    return json.loads(json.dumps(document))


def sanitize_state(state: Any, max_bytes: int) -> dict[str, Any]:
    """
    Validate a state payload before it is sent or stored.

    Args:
        state: Candidate state document
        max_bytes: Ceiling for the UTF-8 encoded JSON size

    Returns:
        A detached copy of the state

    Raises:
        ValidationError: if state is not an object or is too large
    """
    if not isinstance(state, dict):
        raise ValidationError("Invalid state payload")

    try:
        as_text = json.dumps(state, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"State is not JSON-serializable: {e}") from e

    size = len(as_text.encode("utf-8"))
    if size > max_bytes:
        raise ValidationError(f"State payload is too large ({size} > {max_bytes} bytes)")

    return json.loads(as_text)
