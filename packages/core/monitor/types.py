from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional, Tuple

MonitorStatus = Literal["STOPPED", "RUNNING"]
SessionStatus = Literal["STOPPED", "STARTING", "STREAMING"]
BackupStatus = Literal["IDLE", "RUNNING"]


class LineEvent(str, Enum):
    """What a single log line means for the backup job."""
    JOB_STARTED = "JOB_STARTED"
    JOB_FINISHED = "JOB_FINISHED"
    NOISE = "NOISE"


@dataclass(frozen=True)
class WatchTarget:
    name: str  # effective service name, shown in notifications
    unit_id: str


@dataclass(frozen=True)
class MonitorConfig:
    service_name: str
    follow_command: Tuple[str, ...]
    hide_delay_ms: int
    max_line_bytes: int


@dataclass
class MonitorSession:
    """One follower process and its reader task, tied to a single unit."""
    generation: int
    target: WatchTarget
    status: SessionStatus = "STARTING"
    process: Optional[asyncio.subprocess.Process] = None
    reader: Optional[asyncio.Task] = None


@dataclass(frozen=True)
class IndicatorState:
    visible: bool = False
    hide_deadline: Optional[float] = None  # time.monotonic() seconds


@dataclass
class MonitorState:
    status: MonitorStatus = "STOPPED"
    unit_id: Optional[str] = None
    backup_in_progress: bool = False
    indicator_visible: bool = False
