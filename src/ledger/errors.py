"""Ledger gateway exceptions.

Every failure carries a human-readable message plus the raw diagnostic
payload (result codes, diagnostic event XDR) so the run log can be replayed
after the fact.
"""

from typing import Any


class LedgerError(Exception):
    """Base class for failures talking to the ledger."""

    def __init__(
        self,
        message: str,
        *,
        tx_hash: str | None = None,
        diagnostics: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.tx_hash = tx_hash
        self.diagnostics = diagnostics or {}

    def describe(self) -> str:
        """Full diagnostic text for the audit log."""
        lines = [f"{type(self).__name__}: {self.message}"]
        if self.tx_hash:
            lines.append(f"  tx_hash: {self.tx_hash}")
        for key, value in self.diagnostics.items():
            if isinstance(value, list):
                lines.append(f"  {key}:")
                lines.extend(f"    - {item}" for item in value)
            else:
                lines.append(f"  {key}: {value}")
        return "\n".join(lines)


class SimulationError(LedgerError):
    """The node rejected a simulation (the call would revert)."""


class SubmissionRejected(LedgerError):
    """sendTransaction did not admit the transaction."""


class TransactionFailed(LedgerError):
    """The transaction was included but failed on chain."""


class TransactionExpired(LedgerError):
    """The transaction did not reach a terminal status within its validity window."""


__all__ = [
    "LedgerError",
    "SimulationError",
    "SubmissionRejected",
    "TransactionExpired",
    "TransactionFailed",
]
