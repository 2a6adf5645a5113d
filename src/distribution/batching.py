"""Batch partitioning and the per-batch submission state machine."""

from collections.abc import Sequence
from enum import StrEnum

from src.distribution.models import Batch, Recipient
from src.helpers.constants import MAX_BATCH_SIZE


class InvalidTransition(RuntimeError):
    """Raised on a state change the machine does not allow."""


class BatchState(StrEnum):
    PENDING = "pending"
    BUILDING = "building"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class VaultRunState(StrEnum):
    PENDING_BATCHES = "pending_batches"
    IN_BATCH = "in_batch"
    RECONCILING = "reconciling"
    DONE = "done"


BATCH_TRANSITIONS: dict[BatchState, frozenset[BatchState]] = {
    BatchState.PENDING: frozenset({BatchState.BUILDING}),
    # Build or simulation errors fail the batch before submission
    BatchState.BUILDING: frozenset({BatchState.SUBMITTED, BatchState.FAILED}),
    BatchState.SUBMITTED: frozenset({BatchState.CONFIRMED, BatchState.FAILED}),
    BatchState.CONFIRMED: frozenset(),
    BatchState.FAILED: frozenset(),
}

VAULT_TRANSITIONS: dict[VaultRunState, frozenset[VaultRunState]] = {
    VaultRunState.PENDING_BATCHES: frozenset(
        {VaultRunState.IN_BATCH, VaultRunState.RECONCILING}
    ),
    VaultRunState.IN_BATCH: frozenset(
        {VaultRunState.PENDING_BATCHES, VaultRunState.RECONCILING}
    ),
    VaultRunState.RECONCILING: frozenset({VaultRunState.DONE}),
    VaultRunState.DONE: frozenset(),
}


def partition(
    recipients: Sequence[Recipient], size: int = MAX_BATCH_SIZE
) -> list[Batch]:
    """Split recipients into contiguous batches of at most ``size``.

    Order is preserved and batches are numbered from 1, so the numbering is
    stable across re-runs of the same input.

    Raises:
        ValueError: If size is less than 1

    Example:
        ```python
        batches = partition(recipients, 10)  # 23 recipients
        [b.size for b in batches]  # [10, 10, 3]
        ```
    """
    if size < 1:
        msg = f"Batch size must be at least 1, got {size}"
        raise ValueError(msg)
    return [
        Batch(number=number, recipients=list(recipients[start : start + size]))
        for number, start in enumerate(range(0, len(recipients), size), start=1)
    ]


class BatchExecution:
    """Tracks one batch through PENDING → BUILDING → SUBMITTED → terminal."""

    def __init__(self, batch: Batch) -> None:
        self.batch = batch
        self.state = BatchState.PENDING
        self.tx_hash: str | None = None
        self.error: str | None = None

    def advance(self, state: BatchState) -> None:
        if state not in BATCH_TRANSITIONS[self.state]:
            msg = f"Batch {self.batch.number}: cannot go from {self.state} to {state}"
            raise InvalidTransition(msg)
        self.state = state

    def fail(self, error: str) -> None:
        self.advance(BatchState.FAILED)
        self.error = error

    @property
    def terminal(self) -> bool:
        return self.state in (BatchState.CONFIRMED, BatchState.FAILED)


class VaultRun:
    """State of one vault's sequential batch run."""

    def __init__(self, vault: str, batches: list[Batch]) -> None:
        self.vault = vault
        self.batches = batches
        self.state = VaultRunState.PENDING_BATCHES
        self.executions: list[BatchExecution] = []

    def advance(self, state: VaultRunState) -> None:
        if state not in VAULT_TRANSITIONS[self.state]:
            msg = f"Vault {self.vault}: cannot go from {self.state} to {state}"
            raise InvalidTransition(msg)
        self.state = state

    def start_batch(self, batch: Batch) -> BatchExecution:
        """Enter IN_BATCH with a fresh execution record."""
        self.advance(VaultRunState.IN_BATCH)
        execution = BatchExecution(batch)
        self.executions.append(execution)
        return execution

    def finish_batch(self, execution: BatchExecution) -> None:
        if not execution.terminal:
            msg = f"Batch {execution.batch.number} finished in state {execution.state}"
            raise InvalidTransition(msg)
        self.advance(VaultRunState.PENDING_BATCHES)


__all__ = [
    "BatchExecution",
    "BatchState",
    "InvalidTransition",
    "VaultRun",
    "VaultRunState",
    "partition",
]
