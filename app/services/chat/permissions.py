"""Chat authorization rules layered on the program's role hierarchy."""

from collections.abc import Iterable
from typing import Any
from uuid import UUID

from app.models.profile import UserRole

ROLE_PRIORITY: dict[str, int] = {
    UserRole.ADMIN.value: 3,
    UserRole.PARISH_COORDINATOR.value: 2,
    UserRole.ROVING_OBSERVER.value: 1,
    UserRole.OBSERVER.value: 0,
}

ADMIN_ROOM = "admin"
DM_PREFIX = "dm-"


def role_priority(role: Any) -> int:
    """Priority of a role; unknown roles rank below observers."""
    value = getattr(role, "value", role)
    return ROLE_PRIORITY.get(value, -1)


def can_message(sender_role: Any, target_role: Any) -> bool:
    """A user may start a conversation with anyone at or below their rank."""
    sender = role_priority(sender_role)
    return sender >= 0 and sender >= role_priority(target_role)


def dm_room_id(user_a: UUID | str, user_b: UUID | str) -> str:
    a, b = str(user_a), str(user_b)
    return f"{DM_PREFIX}{a}-{b}" if a < b else f"{DM_PREFIX}{b}-{a}"


def parse_dm_room(room: str) -> tuple[str, str] | None:
    """Return the two participant ids of a DM room, or None."""
    if not room.startswith(DM_PREFIX):
        return None
    rest = room[len(DM_PREFIX):]
    # Participant ids are canonical UUID strings (36 chars each)
    if len(rest) != 73 or rest[36] != "-":
        return None
    first, second = rest[:36], rest[37:]
    try:
        UUID(first)
        UUID(second)
    except ValueError:
        return None
    return first, second


def dm_peer_id(room: str, user_id: UUID | str) -> str | None:
    """The other participant of a DM room the user belongs to."""
    participants = parse_dm_room(room)
    if participants is None or str(user_id) not in participants:
        return None
    first, second = participants
    return second if first == str(user_id) else first


def station_rooms(station_id: Any) -> list[str]:
    if not station_id:
        return []
    return [f"parish-{station_id}", f"roving-{station_id}"]


def rooms_for(user: Any) -> list[str]:
    """Named rooms a user is offered (DM rooms are implicit)."""
    return [ADMIN_ROOM, *station_rooms(getattr(user, "assigned_station_id", None))]


def can_join(user: Any, room: str, peer_role: Any = None) -> bool:
    """Whether ``user`` may join ``room``.

    For DM rooms ``peer_role`` is the role of the other participant, or None
    when that profile does not exist.
    """
    if role_priority(user.role) == ROLE_PRIORITY[UserRole.ADMIN.value]:
        return True
    if room in rooms_for(user):
        return True
    if dm_peer_id(room, user.id) is not None:
        return peer_role is not None and role_priority(peer_role) >= 0
    return False


def can_send_dm(sender_role: Any, peer_role: Any, peer_has_written: bool) -> bool:
    """Lower ranks may reply in a DM but not open one."""
    return can_message(sender_role, peer_role) or peer_has_written


def can_edit(actor: Any, sender_id: Any, deleted: bool) -> bool:
    """Only the author edits, and never a deleted message."""
    if deleted:
        return False
    return str(actor.id) == str(sender_id)


def can_delete(actor: Any, sender_id: Any, sender_role: Any, deleted: bool) -> bool:
    """Authors delete their own messages; strictly higher ranks moderate others."""
    if deleted:
        return False
    if str(actor.id) == str(sender_id):
        return True
    return role_priority(actor.role) > role_priority(sender_role)


def searchable_users(actor: Any, users: Iterable[Any], term: str = "") -> list[Any]:
    """Users the actor may open a DM with, filtered by name/email substring."""
    needle = (term or "").strip().lower()
    results = []
    for candidate in users:
        if str(candidate.id) == str(actor.id):
            continue
        if not can_message(actor.role, candidate.role):
            continue
        if needle and needle not in (candidate.name or "").lower() and needle not in (
            candidate.email or ""
        ).lower():
            continue
        results.append(candidate)
    return results
