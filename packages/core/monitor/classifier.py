"""
Classification of follower output lines into backup lifecycle events.

restic emits JSON status/summary records when run with ``--json``; systemd
itself logs a plain-text ``Succeeded.`` line when the unit finishes. Both
completion signals are honoured.
"""

from __future__ import annotations

import json
from typing import Optional

from .types import LineEvent

SUCCEEDED_MARKER = "Succeeded."

_MESSAGE_TYPES = {
    "status": LineEvent.JOB_STARTED,
    "summary": LineEvent.JOB_FINISHED,
}


def _message_type(line: str) -> Optional[str]:
    if not line.startswith("{"):
        return None
    try:
        record = json.loads(line)
    except (ValueError, RecursionError):
        return None
    if not isinstance(record, dict):
        return None
    message_type = record.get("message_type")
    return message_type if isinstance(message_type, str) else None


def classify_line(raw: str) -> LineEvent:
    line = raw.strip()
    if not line:
        return LineEvent.NOISE

    event = _MESSAGE_TYPES.get(_message_type(line))
    if event is not None:
        return event

    if SUCCEEDED_MARKER in line:
        return LineEvent.JOB_FINISHED

    return LineEvent.NOISE
