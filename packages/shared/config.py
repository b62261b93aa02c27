from __future__ import annotations

from typing import List, Literal
from pydantic import BaseModel, Field, field_validator

DEFAULT_FOLLOW_COMMAND = ["journalctl", "-f", "-u", "{unit}", "-n0", "-o", "cat"]


class AppConfig(BaseModel):
    service_name: str = ""
    hide_delay_ms: int = Field(default=2000, ge=0)
    follow_command: List[str] = Field(default_factory=lambda: list(DEFAULT_FOLLOW_COMMAND))
    max_line_bytes: int = Field(default=1024 * 1024, gt=0)
    notifications_enabled: bool = True
    notifier: Literal["tray", "desktop"] = "tray"

    @field_validator("follow_command")
    @classmethod
    def _needs_unit_placeholder(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("follow_command must not be empty")
        if not any("{unit}" in arg for arg in value):
            raise ValueError("follow_command must contain a {unit} placeholder")
        return value

    def to_monitor_config(self) -> dict:
        return {
            "service_name": self.service_name,
            "follow_command": tuple(self.follow_command),
            "hide_delay_ms": self.hide_delay_ms,
            "max_line_bytes": self.max_line_bytes,
        }
