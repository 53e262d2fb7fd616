"""Campaign audience selection and message templates."""

from collections.abc import Iterable
from typing import Any

from sqlalchemy import Select, or_, select

from app.models.communication import CommunicationType, TargetAudience
from app.models.profile import Profile, UserRole, VerificationStatus

MESSAGE_TEMPLATES: dict[str, list[str]] = {
    CommunicationType.SMS.value: [
        "Reminder: Please check in at your assigned polling station by 8 AM tomorrow.",
        "Update: Voting has been extended by 1 hour. Please remain at your station.",
        "Important: Report any irregularities immediately through the app.",
    ],
    CommunicationType.EMAIL.value: [
        "Pre-election briefing scheduled for tomorrow at 2 PM. Location details attached.",
        "Thank you for your service as an electoral observer. Your dedication helps ensure fair elections.",
        "Monthly report submission is due by the 5th. Please submit through the portal.",
    ],
    CommunicationType.WHATSAPP.value: [
        "Quick check-in: How are things at your polling station? Reply with status update.",
        "Emergency contact activated. Please respond if you need immediate assistance.",
        "End of day report: Please submit your observations within the next hour.",
    ],
}

_AUDIENCE_STATUS = {
    TargetAudience.VERIFIED.value: VerificationStatus.VERIFIED.value,
    TargetAudience.PENDING.value: VerificationStatus.PENDING.value,
}


def _target_role(target_filter: dict[str, Any] | None) -> str:
    """Campaigns reach observers unless the filter names another field role."""
    role = (target_filter or {}).get("role")
    if role and role != UserRole.ADMIN.value and role in {r.value for r in UserRole}:
        return role
    return UserRole.OBSERVER.value


def select_recipients(
    profiles: Iterable[Any],
    audience: str,
    target_filter: dict[str, Any] | None = None,
) -> list[Any]:
    """Filter profiles down to a campaign's audience."""
    role = _target_role(target_filter)
    status = _AUDIENCE_STATUS.get(getattr(audience, "value", audience))
    parish = ((target_filter or {}).get("parish") or "").strip().lower()

    recipients = []
    for profile in profiles:
        if profile.role != role:
            continue
        if status is not None and profile.verification_status != status:
            continue
        if parish and parish not in (
            (profile.parish or "").lower(),
            (profile.deployment_parish or "").lower(),
        ):
            continue
        recipients.append(profile)
    return recipients


def recipients_query(audience: str, target_filter: dict[str, Any] | None = None) -> Select:
    """The same selection as ``select_recipients``, as a SQL query."""
    query = select(Profile).where(Profile.role == _target_role(target_filter))
    status = _AUDIENCE_STATUS.get(getattr(audience, "value", audience))
    if status is not None:
        query = query.where(Profile.verification_status == status)
    parish = ((target_filter or {}).get("parish") or "").strip()
    if parish:
        query = query.where(
            or_(Profile.parish.ilike(parish), Profile.deployment_parish.ilike(parish))
        )
    return query.order_by(Profile.created_at)


def recipient_address(profile: Any, channel: str) -> str | None:
    """Phone number for SMS/WhatsApp, email address for email."""
    value = getattr(channel, "value", channel)
    if value in (CommunicationType.SMS.value, CommunicationType.WHATSAPP.value):
        return profile.phone_number or None
    if value == CommunicationType.EMAIL.value:
        return profile.email or None
    return None
