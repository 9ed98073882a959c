"""Schema definitions for feedback records.

Maps 1:1 to the ``feedback`` database table. Each record is a human
correction of a ticket's predicted category or priority, kept for
retraining exports. The monitoring engine never reads it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from src.triage.schemas import VALID_PRIORITIES


@dataclass
class Feedback:
    """A persisted feedback record from the feedback table.

    Attributes:
        ticket_id: Ticket the correction applies to.
        user_category: Category the agent says is correct.
        user_priority: Priority the agent says is correct.
        comment: Optional free-text comment.
        feedback_id: Database identifier (None until stored).
        created_at: When the feedback was submitted.
    """

    ticket_id: int
    user_category: str | None = None
    user_priority: str | None = None
    comment: str | None = None
    feedback_id: int | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        if self.user_priority is not None and self.user_priority not in VALID_PRIORITIES:
            raise ValueError(
                f"Invalid user_priority {self.user_priority!r}. "
                f"Must be one of: {list(VALID_PRIORITIES)}"
            )
