"""Helper for deterministic outbound message tagging."""

from datetime import datetime
from uuid import UUID, uuid5

# DNS namespace UUID for deterministic UUID5 generation
DNS_NAMESPACE = UUID("6ba7b810-9dad-11d1-80b4-00c04fd430c8")


def generate_message_id(run_id: str, target_id: str, ts: datetime | None = None) -> str:
    """Generate deterministic message ID using UUID5.

    The same run and target always map to the same ID, so a manual
    re-dispatch of a failed target within a run can be correlated with the
    first attempt.

    Args:
        run_id: Reminder run ID
        target_id: Dispatch target ID
        ts: Optional timestamp to make the ID unique per attempt

    Returns:
        Deterministic message ID (UUID string)
    """
    parts = [run_id, target_id]
    if ts is not None:
        parts.append(ts.isoformat())
    return str(uuid5(DNS_NAMESPACE, "|".join(parts)))
