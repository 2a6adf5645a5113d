"""Aggregate on-chain operations submitted once per batch."""

from abc import ABC, abstractmethod

from typing import Any

from stellar_sdk import xdr as stellar_xdr

from src.distribution.constants import (
    DISTRIBUTE_METHOD,
    ROUTER_EXEC_METHOD,
    TRANSFER_METHOD,
)
from src.distribution.models import Batch
from src.ledger.codec import StellarCodec


class BatchOperation(ABC):
    """How one batch of recipients becomes a single contract invocation."""

    #: Output subdirectory for this operation's audit files
    stage: str
    #: Contract function invoked once per batch
    method: str

    def __init__(self, contract: str, caller: str, codec: StellarCodec) -> None:
        self.contract = contract
        self.caller = caller
        self.codec = codec

    @abstractmethod
    def build_args(self, vault: str, batch: Batch) -> list[stellar_xdr.SCVal]:
        """Encoded arguments covering every recipient of the batch."""

    @abstractmethod
    def decode(self, return_value: Any, batch: Batch) -> dict[str, int] | None:
        """Per-recipient confirmed amounts, or None if the value is unusable."""

    @abstractmethod
    def funding_token(self, vault: str, asset: str | None) -> str | None:
        """Token the caller must hold to fund the vault run."""


class DistributorOperation(BatchOperation):
    """``distributor.distribute(caller, vault, recipients)``.

    The distributor deposits the batch's underlying into the vault and hands
    out the minted shares pro rata; it returns ``Vec<(Address, i128)>`` with
    the shares each recipient actually received.
    """

    stage = "distributor"
    method = DISTRIBUTE_METHOD

    def build_args(self, vault: str, batch: Batch) -> list[stellar_xdr.SCVal]:
        return [
            self.codec.address(self.caller),
            self.codec.address(vault),
            self.codec.vec(
                [self.codec.recipient(r.address, r.amount) for r in batch.recipients]
            ),
        ]

    def decode(self, return_value: Any, batch: Batch) -> dict[str, int] | None:
        if not isinstance(return_value, list):
            return None
        confirmed: dict[str, int] = {}
        try:
            for address, amount in return_value:
                confirmed[str(address)] = confirmed.get(str(address), 0) + int(amount)
        except (TypeError, ValueError):
            return None
        return confirmed

    def funding_token(self, vault: str, asset: str | None) -> str | None:
        return asset


class RouterTransferOperation(BatchOperation):
    """``router.exec(caller, [(vault, "transfer", [caller, to, amount], false)])``.

    The router runs every sub-invocation atomically, so a successful call
    means each transfer moved exactly the requested amount.
    """

    stage = "transfers"
    method = ROUTER_EXEC_METHOD

    def build_args(self, vault: str, batch: Batch) -> list[stellar_xdr.SCVal]:
        invocations = [
            self.codec.invocation(
                vault,
                TRANSFER_METHOD,
                [
                    self.codec.address(self.caller),
                    self.codec.address(r.address),
                    self.codec.i128(r.amount),
                ],
            )
            for r in batch.recipients
        ]
        return [self.codec.address(self.caller), self.codec.vec(invocations)]

    def decode(self, return_value: Any, batch: Batch) -> dict[str, int] | None:
        confirmed: dict[str, int] = {}
        for r in batch.recipients:
            confirmed[r.address] = confirmed.get(r.address, 0) + r.amount
        return confirmed

    def funding_token(self, vault: str, asset: str | None) -> str | None:
        return vault


__all__ = [
    "BatchOperation",
    "DistributorOperation",
    "RouterTransferOperation",
]
