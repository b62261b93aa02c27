from __future__ import annotations

from typing import Optional

_TITLES = {
    "BACKUP_STARTED": "Restic backup started",
    "BACKUP_FINISHED": "Restic backup finished",
}


def build_notification_payload(evt: dict) -> Optional[dict]:
    title = _TITLES.get(evt.get("type"))
    if title is None:
        return None
    service = evt.get("service") or evt.get("unit") or "unknown"
    return {"title": title, "body": f"Service {service}"}
