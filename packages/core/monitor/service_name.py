"""
Resolution of the configured backup name into the systemd unit to follow.

NixOS-style restic jobs are named ``restic-backups-<name>.service``; a name
that already carries the ``.service`` suffix is taken as a full unit name.
"""

from __future__ import annotations

import socket
from typing import Optional

from .types import WatchTarget

UNIT_PREFIX = "restic-backups-"
UNIT_SUFFIX = ".service"
FALLBACK_NAME = "home"


def local_host_name() -> Optional[str]:
    try:
        return socket.gethostname() or None
    except OSError:
        return None


def effective_service_name(configured: Optional[str], host: Optional[str]) -> str:
    name = (configured or "").strip()
    if name:
        return name
    return host or FALLBACK_NAME


def resolve_unit(name: str) -> str:
    if name.endswith(UNIT_SUFFIX):
        return name
    return f"{UNIT_PREFIX}{name}{UNIT_SUFFIX}"


def resolve_target(configured: Optional[str], host: Optional[str] = None) -> WatchTarget:
    """Build the watch target for a configured name, defaulting to the host name."""
    if host is None:
        host = local_host_name()
    name = effective_service_name(configured, host)
    return WatchTarget(name=name, unit_id=resolve_unit(name))
