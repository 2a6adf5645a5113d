"""Pydantic models for Soroban JSON-RPC requests and responses."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request model."""

    jsonrpc: str = Field(default="2.0", description="JSON-RPC version")
    method: str = Field(..., description="Method name to call")
    params: dict[str, Any] | list[Any] = Field(
        default_factory=dict, description="Method parameters"
    )
    id: int | str = Field(..., description="Request ID")


class RpcModel(BaseModel):
    """Base for RPC responses: camelCase aliases, unknown fields kept."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class SimulateHostFunctionResult(RpcModel):
    """Return value and auth entries of a simulated host function."""

    auth: list[str] = Field(default_factory=list, description="Auth entries XDR")
    xdr: str = Field(..., description="Return value as base64 SCVal XDR")


class SimulateTransactionResponse(RpcModel):
    """Response of simulateTransaction."""

    latest_ledger: int = Field(..., alias="latestLedger")
    min_resource_fee: int | None = Field(default=None, alias="minResourceFee")
    transaction_data: str | None = Field(
        default=None,
        description="SorobanTransactionData XDR",
        alias="transactionData",
    )
    results: list[SimulateHostFunctionResult] | None = None
    events: list[str] | None = Field(default=None, description="Diagnostic events")
    error: str | None = None
    restore_preamble: dict[str, Any] | None = Field(
        default=None, alias="restorePreamble"
    )

    @property
    def is_error(self) -> bool:
        """Whether the simulation was rejected."""
        return self.error is not None

    @property
    def retval_xdr(self) -> str | None:
        """Return value XDR of the first (only) host function, if any."""
        if not self.results:
            return None
        return self.results[0].xdr

    @property
    def auth(self) -> list[str]:
        """Auth entries required by the first host function."""
        if not self.results:
            return []
        return self.results[0].auth


class SendTransactionStatus(StrEnum):
    """Admission status returned by sendTransaction."""

    PENDING = "PENDING"
    DUPLICATE = "DUPLICATE"
    TRY_AGAIN_LATER = "TRY_AGAIN_LATER"
    ERROR = "ERROR"


class SendTransactionResponse(RpcModel):
    """Response of sendTransaction."""

    status: SendTransactionStatus
    hash: str
    latest_ledger: int | None = Field(default=None, alias="latestLedger")
    latest_ledger_close_time: str | None = Field(
        default=None, alias="latestLedgerCloseTime"
    )
    error_result_xdr: str | None = Field(default=None, alias="errorResultXdr")
    diagnostic_events_xdr: list[str] | None = Field(
        default=None, alias="diagnosticEventsXdr"
    )


class GetTransactionStatus(StrEnum):
    """Lookup status returned by getTransaction."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NOT_FOUND = "NOT_FOUND"


class GetTransactionResponse(RpcModel):
    """Response of getTransaction."""

    status: GetTransactionStatus
    latest_ledger: int | None = Field(default=None, alias="latestLedger")
    ledger: int | None = None
    tx_hash: str | None = Field(default=None, alias="txHash")
    result_xdr: str | None = Field(default=None, alias="resultXdr")
    result_meta_xdr: str | None = Field(default=None, alias="resultMetaXdr")
    return_value_xdr: str | None = Field(default=None, alias="returnValue")
    diagnostic_events_xdr: list[str] | None = Field(
        default=None, alias="diagnosticEventsXdr"
    )


class LedgerEntryResult(RpcModel):
    """A single ledger entry returned by getLedgerEntries."""

    key: str
    xdr: str = Field(..., description="LedgerEntryData XDR")
    last_modified_ledger_seq: int | None = Field(
        default=None, alias="lastModifiedLedgerSeq"
    )


class GetLedgerEntriesResponse(RpcModel):
    """Response of getLedgerEntries."""

    entries: list[LedgerEntryResult] | None = None
    latest_ledger: int = Field(..., alias="latestLedger")


class GetLatestLedgerResponse(RpcModel):
    """Response of getLatestLedger."""

    id: str
    protocol_version: int = Field(..., alias="protocolVersion")
    sequence: int


__all__ = [
    "GetLatestLedgerResponse",
    "GetLedgerEntriesResponse",
    "GetTransactionResponse",
    "GetTransactionStatus",
    "JsonRpcRequest",
    "LedgerEntryResult",
    "SendTransactionResponse",
    "SendTransactionStatus",
    "SimulateHostFunctionResult",
    "SimulateTransactionResponse",
]
