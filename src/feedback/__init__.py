"""Human corrections of ticket predictions.

Components:
- Feedback: Dataclass mapping to the feedback table
- FeedbackRepository: Read access by ticket or by time range
"""

from src.feedback.repository import FeedbackRepository
from src.feedback.schemas import Feedback

__all__ = [
    "Feedback",
    "FeedbackRepository",
]
