"""
Participant aggregates (``workforce_kernel.domain.participants``).

Pure predicates over a contract's participants.  Each accepts any iterable
of objects exposing ``role``, ``approved``, ``requires_signature``,
``signed_at`` and ``is_active`` (ORM rows or ParticipantInfo DTOs), so the
registry and the workflow gates answer the same question the same way.

An empty set of approvers or signers is NOT approved or signed.
"""

from typing import Any, Iterable

from workforce_kernel.domain.states import ParticipantRole


def _active(participants: Iterable[Any]) -> list[Any]:
    return [p for p in participants if getattr(p, "is_active", True)]


def with_role(participants: Iterable[Any], role: ParticipantRole) -> list[Any]:
    return [p for p in _active(participants) if p.role == role.value]


def has_role(participants: Iterable[Any], role: ParticipantRole) -> bool:
    return bool(with_role(participants, role))


def all_approvers_approved(participants: Iterable[Any]) -> bool:
    approvers = with_role(participants, ParticipantRole.APPROVER)
    return bool(approvers) and all(p.approved for p in approvers)


def all_signatures_complete(participants: Iterable[Any]) -> bool:
    signers = [p for p in _active(participants) if p.requires_signature]
    return bool(signers) and all(p.signed_at is not None for p in signers)


def counterpart_signatures_complete(participants: Iterable[Any]) -> bool:
    """Every signature-required participant other than the contractor has signed."""
    signers = [
        p for p in _active(participants)
        if p.requires_signature and p.role != ParticipantRole.CONTRACTOR.value
    ]
    return bool(signers) and all(p.signed_at is not None for p in signers)


def primary_user(participants: Iterable[Any], role: ParticipantRole) -> Any:
    """User id of the primary (else first) participant in ``role`` that has a user."""
    candidates = [p for p in with_role(participants, role) if p.user_id is not None]
    if not candidates:
        return None
    for p in candidates:
        if p.is_primary:
            return p.user_id
    return candidates[0].user_id
