"""SQLAlchemy models."""

from app.models.chat import ChatMessage
from app.models.communication import Communication, CommunicationLog
from app.models.notification import Notification
from app.models.profile import Profile
from app.models.report import ObservationReport
from app.models.station import PollingStation
from app.models.verification import IdentityVerification, VerificationDocument

__all__ = [
    "Profile",
    "PollingStation",
    "ObservationReport",
    "Communication",
    "CommunicationLog",
    "VerificationDocument",
    "IdentityVerification",
    "ChatMessage",
    "Notification",
]
