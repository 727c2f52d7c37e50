from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RequestContext:
    """Who triggered an engine operation, attached to every audit log line."""

    ip: str = "unknown"
    user_agent: str = "unknown"
    origin: str = "http"
    timestamp: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_request(cls, request) -> "RequestContext":
        return cls(
            ip=request.remote_addr or "unknown",
            user_agent=request.headers.get("User-Agent") or "unknown",
            origin="http",
        )

    @classmethod
    def for_cli(cls) -> "RequestContext":
        return cls(ip="local", user_agent="flask-cli", origin="cli")

    def as_log_fields(self) -> dict[str, Any]:
        return {
            "origin": self.origin,
            "ip": self.ip,
            "user_agent": self.user_agent,
            "requested_at": self.timestamp.isoformat(timespec="seconds"),
        }


SYSTEM_CONTEXT = RequestContext(ip="local", user_agent="system", origin="system")


def format_fields(fields: dict[str, Any]) -> str:
    """Render log fields as ``key=value`` pairs in a stable order."""

    return " ".join(f"{key}={value}" for key, value in fields.items())
