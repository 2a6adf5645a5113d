"""Before/after balance reconciliation for a vault run."""

from collections.abc import Iterable

import httpx
from pydantic import BaseModel

from src.distribution.models import (
    Batch,
    ConversionRate,
    Recipient,
    TransferResult,
    TransferStatus,
)
from src.distribution.rates import to_underlying
from src.helpers.logging import get_logger
from src.helpers.parsers import shorten_address
from src.helpers.rpc import RPCError
from src.ledger.errors import LedgerError
from src.ledger.gateway import LedgerGateway


logger = get_logger(__name__)


class SettledTransfer(BaseModel):
    """A recipient whose batch reached SUCCESS, awaiting reconciliation."""

    recipient: Recipient
    batch_number: int
    tx_hash: str | None = None
    confirmed: bool = True
    rate: ConversionRate | None = None


async def snapshot_balances(
    gateway: LedgerGateway,
    token: str,
    addresses: Iterable[str],
    caller: str | None = None,
) -> dict[str, int]:
    """Read each distinct address's balance of ``token`` once.

    A balance that still cannot be read after retries is recorded as 0 with a
    warning; the reconciliation then flags the row instead of aborting.
    """
    balances: dict[str, int] = {}
    for address in addresses:
        if address in balances:
            continue
        try:
            balances[address] = await gateway.get_balance(token, address, caller)
        except (LedgerError, RPCError, httpx.HTTPError, ValueError) as e:
            logger.warning(
                "Could not read balance of %s: %s", shorten_address(address), e
            )
            balances[address] = 0
    return balances


def failed_results(
    vault: str,
    batch: Batch,
    reason: str,
    balances_before: dict[str, int],
    tx_hash: str | None = None,
) -> list[TransferResult]:
    """Rows for every recipient of a failed batch.

    Nothing moved, so confirmed is 0 and after equals before.
    """
    status = TransferStatus.failed(reason)
    results = []
    for r in batch.recipients:
        before = balances_before.get(r.address, 0)
        results.append(
            TransferResult(
                vault=vault,
                recipient=r.address,
                amount_requested=r.amount,
                share_tokens_confirmed=0,
                balance_before=before,
                balance_after=before,
                balance_delta=0,
                tx_hash=tx_hash,
                batch_number=batch.number,
                status=status,
            )
        )
    return results


def reconcile(
    vault: str,
    settled: list[SettledTransfer],
    confirmed: dict[str, int],
    balances_before: dict[str, int],
    balances_after: dict[str, int],
) -> list[TransferResult]:
    """Compare confirmed amounts with observed balance deltas.

    Rows are produced per distinct recipient: an address listed more than
    once in a vault gets one row with the summed requested amount, since
    its balance delta covers every transfer it received. A mismatch is
    flagged on the row and never raised.

    Args:
        vault: Vault id
        settled: Recipients of batches that reached SUCCESS, in order
        confirmed: Merged per-recipient amounts decoded from return values
        balances_before: Snapshot before the first batch
        balances_after: Snapshot after the last batch

    Returns:
        One TransferResult per distinct settled recipient, first-seen order
    """
    by_address: dict[str, list[SettledTransfer]] = {}
    for entry in settled:
        by_address.setdefault(entry.recipient.address, []).append(entry)

    results = []
    for address, entries in by_address.items():
        last = entries[-1]
        before = balances_before.get(address, 0)
        after = balances_after.get(address, 0)
        delta = after - before

        if all(e.confirmed for e in entries):
            amount = confirmed.get(address, 0)
            status = TransferStatus.SUCCESS
        else:
            amount = delta
            status = TransferStatus.UNCONFIRMED

        mismatch = delta != amount
        if mismatch:
            logger.warning(
                "MISMATCH %s: confirmed %d, balance delta %d",
                shorten_address(address),
                amount,
                delta,
            )

        results.append(
            TransferResult(
                vault=vault,
                recipient=address,
                amount_requested=sum(e.recipient.amount for e in entries),
                share_tokens_confirmed=amount,
                balance_before=before,
                balance_after=after,
                balance_delta=delta,
                underlying_estimate=(
                    to_underlying(amount, last.rate) if last.rate else None
                ),
                tx_hash=last.tx_hash,
                batch_number=last.batch_number,
                status=status,
                mismatch=mismatch,
            )
        )
    return results


__all__ = [
    "SettledTransfer",
    "failed_results",
    "reconcile",
    "snapshot_balances",
]
