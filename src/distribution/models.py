"""Pydantic models for distribution records, batches and results."""

from pydantic import BaseModel, ConfigDict, Field, computed_field

from src.helpers.constants import I128_MAX


class DistributionRecord(BaseModel):
    """One validated input row."""

    vault: str = Field(..., min_length=1)
    asset: str | None = None
    recipient: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0, le=I128_MAX)


class Recipient(BaseModel):
    """A destination address and the amount requested for it."""

    address: str
    amount: int = Field(..., gt=0, le=I128_MAX)


class VaultGroup(BaseModel):
    """Recipients of one vault, in input order."""

    vault: str
    asset: str | None = None
    recipients: list[Recipient] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_requested(self) -> int:
        return sum(r.amount for r in self.recipients)


class Batch(BaseModel):
    """Contiguous slice of a vault's recipients submitted as one transaction."""

    number: int = Field(..., ge=1)
    recipients: list[Recipient]

    @property
    def size(self) -> int:
        return len(self.recipients)


class ConversionRate(BaseModel):
    """Share-to-underlying rate observed at one point in time."""

    reference_share_amount: int = Field(..., gt=0)
    reference_underlying_amount: int = Field(..., ge=0)


class TransferStatus:
    """Status strings written to the audit log."""

    SUCCESS = "success"
    UNCONFIRMED = "unconfirmed"
    FAILED_PREFIX = "failed: "

    @classmethod
    def failed(cls, reason: str) -> str:
        # Keep status single-line so the CSV stays one row per record
        return cls.FAILED_PREFIX + " ".join(reason.split())


class TransferResult(BaseModel):
    """Final outcome for one recipient of one vault run."""

    vault: str
    recipient: str
    amount_requested: int
    share_tokens_confirmed: int = 0
    balance_before: int = 0
    balance_after: int = 0
    balance_delta: int = 0
    underlying_estimate: int | None = None
    tx_hash: str | None = None
    batch_number: int
    status: str
    mismatch: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def failed(self) -> bool:
        return self.status.startswith(TransferStatus.FAILED_PREFIX)

    def to_row(self) -> list[str]:
        """Audit CSV row, in AUDIT_CSV_HEADER order."""
        return [
            self.vault,
            self.recipient,
            str(self.amount_requested),
            str(self.share_tokens_confirmed),
            str(self.balance_before),
            str(self.balance_after),
            str(self.balance_delta),
            "" if self.underlying_estimate is None else str(self.underlying_estimate),
            self.tx_hash or "",
            str(self.batch_number),
            self.status,
            "MISMATCH" if self.mismatch else "",
        ]


class Allocation(BaseModel):
    """Per-recipient split of a minted lump sum."""

    shares: dict[str, int]
    dust: int = Field(..., ge=0)
    minted_total: int
    total_requested: int


class VaultRunSummary(BaseModel):
    """Aggregate counts for one vault run."""

    vault: str
    succeeded: int = 0
    unconfirmed: int = 0
    failed: int = 0
    mismatched: int = 0
    total_confirmed: int = 0
    total_delta: int = 0

    @property
    def discrepancy(self) -> int:
        """Observed minus confirmed over non-failed rows."""
        return self.total_delta - self.total_confirmed

    @classmethod
    def from_results(
        cls, vault: str, results: list[TransferResult]
    ) -> "VaultRunSummary":
        summary = cls(vault=vault)
        for result in results:
            if result.failed:
                summary.failed += 1
                continue
            if result.status == TransferStatus.UNCONFIRMED:
                summary.unconfirmed += 1
            else:
                summary.succeeded += 1
            if result.mismatch:
                summary.mismatched += 1
            summary.total_confirmed += result.share_tokens_confirmed
            summary.total_delta += result.balance_delta
        return summary


class RunSummary(BaseModel):
    """Aggregate over every vault of a run."""

    vaults: list[VaultRunSummary] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(v.succeeded for v in self.vaults)

    @property
    def unconfirmed(self) -> int:
        return sum(v.unconfirmed for v in self.vaults)

    @property
    def failed(self) -> int:
        return sum(v.failed for v in self.vaults)

    @property
    def mismatched(self) -> int:
        return sum(v.mismatched for v in self.vaults)

    @property
    def total_confirmed(self) -> int:
        return sum(v.total_confirmed for v in self.vaults)

    @property
    def total_delta(self) -> int:
        return sum(v.total_delta for v in self.vaults)

    @property
    def discrepancy(self) -> int:
        return self.total_delta - self.total_confirmed


class AnalysisUser(BaseModel):
    address: str
    underlying_amount: str


class VaultAnalysis(BaseModel):
    """Per-vault totals of an analysis report (amounts as decimal strings)."""

    amount: str
    user_count: int
    users: list[AnalysisUser]


class AnalysisReport(BaseModel):
    """Output of the analyze stage, input of the deposit stage."""

    timestamp: str
    source_csv: str
    total_users: int
    total_vaults: int
    vaults: dict[str, VaultAnalysis]


class DepositOutcome(BaseModel):
    """Result of depositing one vault's total through the router."""

    vault: str
    amount_deposited: int
    # None when the deposit landed but the minted amount could not be measured
    minted: int | None
    dust: int | None
    tx_hash: str
    timestamp: str
    shares: dict[str, int] = Field(default_factory=dict)

    def to_row(self) -> list[str]:
        return [
            self.vault,
            str(self.amount_deposited),
            "unknown" if self.minted is None else str(self.minted),
            "unknown" if self.dust is None else str(self.dust),
            self.tx_hash,
            self.timestamp,
        ]


__all__ = [
    "Allocation",
    "AnalysisReport",
    "AnalysisUser",
    "Batch",
    "ConversionRate",
    "DepositOutcome",
    "DistributionRecord",
    "Recipient",
    "RunSummary",
    "TransferResult",
    "TransferStatus",
    "VaultAnalysis",
    "VaultGroup",
    "VaultRunSummary",
]
