"""Schema definitions for delivery outcome records.

One DeliveryOutcome is appended per dispatch attempt. Records are
append-only and exist for observability; nothing in the engine reads them
back to make decisions.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

DeliveryStatus = Literal["success", "error"]

VALID_STATUSES: frozenset[str] = frozenset({"success", "error"})


@dataclass(frozen=True)
class DeliveryResult:
    """Result of one webhook call, before it is logged."""

    success: bool
    detail: str | None = None
    status_code: int | None = None


@dataclass(frozen=True)
class DeliveryOutcome:
    """A delivery log record.

    Attributes:
        target_id: Watch target the notification was for.
        platform: Platform value (video-feed, live-stream).
        content_type: Resolved content type value.
        message: The rendered message that was sent.
        status: success or error.
        content_id: Originating upstream content id.
        error_detail: Response status/body or transport error text on failure.
        delivered_at: When the attempt completed.
        outcome_id: UUID4 identifier.
    """

    target_id: str
    platform: str
    content_type: str
    message: str
    status: str
    content_id: str | None = None
    error_detail: str | None = None
    delivered_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    outcome_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if self.status not in VALID_STATUSES:
            raise ValueError(
                f"Invalid status {self.status!r}. "
                f"Must be one of: {sorted(VALID_STATUSES)}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "outcome_id": self.outcome_id,
            "target_id": self.target_id,
            "platform": self.platform,
            "content_type": self.content_type,
            "message": self.message,
            "status": self.status,
            "content_id": self.content_id,
            "error_detail": self.error_detail,
            "delivered_at": self.delivered_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeliveryOutcome":
        delivered_at = data.get("delivered_at")
        if isinstance(delivered_at, str):
            delivered_at = datetime.fromisoformat(delivered_at)
        elif delivered_at is None:
            delivered_at = datetime.now(timezone.utc)

        return cls(
            outcome_id=data.get("outcome_id", str(uuid.uuid4())),
            target_id=data["target_id"],
            platform=data["platform"],
            content_type=data["content_type"],
            message=data["message"],
            status=data["status"],
            content_id=data.get("content_id"),
            error_detail=data.get("error_detail"),
            delivered_at=delivered_at,
        )
