"""Pro-rata split of a minted share amount across recipients."""

from collections.abc import Sequence

from src.distribution.models import Allocation, Recipient


class AllocationError(ValueError):
    """Raised when allocation inputs violate the caller's contract."""


def allocate(minted_total: int, recipients: Sequence[Recipient]) -> Allocation:
    """Split ``minted_total`` proportionally to each requested amount.

    Each share is ``floor(requested * minted_total / total_requested)``
    in exact integer arithmetic. The remainder (dust) stays with the
    distributing account and is never redistributed, so
    ``0 <= dust < len(recipients)``.

    A recipient listed more than once receives the sum of its per-row shares.

    Args:
        minted_total: Share tokens actually minted for the group
        recipients: Recipients with their requested amounts, in order

    Returns:
        Allocation with shares in input order and the dust

    Raises:
        AllocationError: Empty recipient list, zero requested total or a
            negative minted total

    Example:
        >>> a = allocate(97, [Recipient(address="A", amount=40),
        ...                   Recipient(address="B", amount=35),
        ...                   Recipient(address="C", amount=25)])
        >>> a.shares, a.dust
        ({'A': 38, 'B': 33, 'C': 24}, 2)
    """
    if not recipients:
        msg = "Cannot allocate to an empty recipient list"
        raise AllocationError(msg)
    if minted_total < 0:
        msg = f"Minted total must be non-negative, got {minted_total}"
        raise AllocationError(msg)

    total_requested = sum(r.amount for r in recipients)
    if total_requested <= 0:
        msg = "Cannot allocate against a zero requested total"
        raise AllocationError(msg)

    shares: dict[str, int] = {}
    for recipient in recipients:
        share = recipient.amount * minted_total // total_requested
        shares[recipient.address] = shares.get(recipient.address, 0) + share

    dust = minted_total - sum(shares.values())

    return Allocation(
        shares=shares,
        dust=dust,
        minted_total=minted_total,
        total_requested=total_requested,
    )


__all__ = ["AllocationError", "allocate"]
