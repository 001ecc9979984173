"""Trigger event and response types."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4


@dataclass
class TriggerEvent:
    """An inbound event that should start a workflow run.

    The payload is passed through untouched as the run input.
    """

    source: str = "manual"
    detail_type: Optional[str] = None
    payload: Any = field(default_factory=dict)
    trigger_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Any, source: str = "webhook", correlation_id: Optional[str] = None) -> "TriggerEvent":
        """Wrap a raw event body (EventBridge style or arbitrary JSON).

        The whole body becomes the payload, so handlers still see
        ``detail.ec2InstanceId`` and friends.
        """
        if isinstance(raw, dict):
            return cls(
                source=raw.get("source") or source,
                detail_type=raw.get("detail-type") or raw.get("detail_type"),
                payload=raw,
                trigger_id=str(raw.get("id") or uuid4()),
                correlation_id=correlation_id,
            )
        return cls(source=source, payload=raw, correlation_id=correlation_id)


@dataclass
class GatewayResponse:
    """Synchronous accept/reject acknowledgment for a trigger event."""

    accepted: bool
    status_code: int
    message: str
    run_id: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        """Lambda-style ``{statusCode, body}`` response."""
        body: dict[str, Any] = {"message": self.message}
        if self.run_id:
            body["runId"] = self.run_id
        if self.error_message:
            body["error"] = self.error_message
        return {"statusCode": self.status_code, "body": body}
