"""
Idempotency key generation utilities.

Idempotency keys ensure that the same money-movement milestone always
produces the same remittance entry, even under retries and concurrent
processing.
"""

from uuid import UUID


def generate_idempotency_key(
    anchor_type: str,
    anchor_id: UUID | str,
    milestone: str,
) -> str:
    """
    Generate an idempotency key for a ledger milestone.

    Format: anchor_type:anchor_id:milestone

    The key is stored on the Remittance and has a unique constraint.

    Args:
        anchor_type: Entity the milestone belongs to ("invoice" or "contract").
        anchor_id: Identifier of that entity.
        milestone: Remittance milestone name.

    Example:
        >>> generate_idempotency_key("invoice", uuid, "payment_received")
        "invoice:550e8400-e29b-41d4-a716-446655440000:payment_received"
    """
    return f"{anchor_type}:{anchor_id}:{milestone}"


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Parse an idempotency key into (anchor_type, anchor_id, milestone).

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) != 3:
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]
