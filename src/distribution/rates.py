"""Share-to-underlying conversion rate reads."""

from typing import Any

from src.distribution.constants import (
    ASSET_AMOUNTS_PER_SHARES_METHOD,
    DECIMALS_METHOD,
)
from src.distribution.models import ConversionRate
from src.helpers.constants import DEFAULT_DECIMALS, RATE_REFERENCE_WHOLE_TOKENS
from src.helpers.logging import get_logger
from src.ledger.gateway import LedgerGateway


logger = get_logger(__name__)


class RateOracle:
    """Reads a vault's current rate via a simulated call.

    The rate is informational: it feeds the underlying estimate in the audit
    log and never decides whether a transfer succeeded.
    """

    def __init__(self, gateway: LedgerGateway) -> None:
        self.gateway = gateway
        self._decimals: dict[str, int] = {}

    async def decimals(self, vault: str, caller: str | None = None) -> int:
        """Share token decimals of a vault, cached per vault."""
        if vault not in self._decimals:
            value = await self.gateway.simulate(vault, DECIMALS_METHOD, [], caller)
            self._decimals[vault] = int(value) if value is not None else DEFAULT_DECIMALS
        return self._decimals[vault]

    async def fetch_rate(self, vault: str, caller: str | None = None) -> ConversionRate:
        """Underlying amount for a fixed reference amount of shares.

        Raises:
            LedgerError: If the simulation is rejected
            ValueError: If the vault answers with an unexpected shape
        """
        decimals = await self.decimals(vault, caller)
        reference = RATE_REFERENCE_WHOLE_TOKENS * 10**decimals
        value = await self.gateway.simulate(
            vault,
            ASSET_AMOUNTS_PER_SHARES_METHOD,
            [self.gateway.codec.i128(reference)],
            caller,
        )
        return ConversionRate(
            reference_share_amount=reference,
            reference_underlying_amount=_first_amount(value),
        )


def _first_amount(value: Any) -> int:
    # Vaults return one amount per underlying asset; single-asset vaults
    # put theirs first.
    if isinstance(value, list) and value:
        return int(value[0])
    if isinstance(value, int):
        return value
    msg = f"Unexpected get_asset_amounts_per_shares result: {value!r}"
    raise ValueError(msg)


def to_underlying(shares: int, rate: ConversionRate) -> int:
    """Estimate the underlying value of ``shares`` at ``rate`` (floored)."""
    return shares * rate.reference_underlying_amount // rate.reference_share_amount


__all__ = ["RateOracle", "to_underlying"]
