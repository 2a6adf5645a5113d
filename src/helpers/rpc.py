"""Soroban JSON-RPC client utilities."""

from itertools import count

from typing import Any

import httpx

from src.helpers.constants import DEFAULT_TIMEOUT
from src.helpers.rpc_models import (
    GetLatestLedgerResponse,
    GetLedgerEntriesResponse,
    GetTransactionResponse,
    JsonRpcRequest,
    SendTransactionResponse,
    SimulateTransactionResponse,
)


class RPCError(Exception):
    """Raised when a JSON-RPC response carries an error object."""

    def __init__(self, method: str, error: Any) -> None:
        self.method = method
        self.error = error
        if isinstance(error, dict):
            self.code = error.get("code")
            detail = error.get("message", error)
        else:
            self.code = None
            detail = error
        super().__init__(f"RPC error in {method}: {detail}")


class SorobanRPCClient:
    """Soroban JSON-RPC client.

    The client holds no connection state; every call takes the caller's
    ``httpx.AsyncClient`` so one pooled client serves a whole run.
    """

    def __init__(self, rpc_url: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Initialize RPC client.

        Args:
            rpc_url: Soroban JSON-RPC endpoint URL
            timeout: Default timeout for requests in seconds

        Raises:
            ValueError: If rpc_url is empty or None
        """
        if not rpc_url:
            msg = "RPC URL cannot be empty"
            raise ValueError(msg)

        self.rpc_url = rpc_url
        self.timeout = timeout
        self._ids = count(1)

    async def call(
        self,
        client: httpx.AsyncClient,
        method: str,
        params: dict[str, Any] | list[Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Make a single JSON-RPC call.

        Args:
            client: HTTP client instance
            method: RPC method name (e.g., "getLatestLedger")
            params: Method parameters (Soroban RPC uses named params)
            timeout: Optional timeout override

        Returns:
            RPC result value

        Raises:
            httpx.HTTPError: If the HTTP request fails
            RPCError: If the RPC response contains an error
        """
        payload = JsonRpcRequest(
            method=method, params=params or {}, id=next(self._ids)
        ).model_dump()

        response = await client.post(
            self.rpc_url, json=payload, timeout=timeout or self.timeout
        )
        response.raise_for_status()
        result = response.json()

        if "error" in result:
            raise RPCError(method, result["error"])

        return result.get("result")

    async def simulate_transaction(
        self, client: httpx.AsyncClient, envelope_xdr: str
    ) -> SimulateTransactionResponse:
        """Simulate a transaction envelope.

        Args:
            client: HTTP client instance
            envelope_xdr: Base64 TransactionEnvelope

        Returns:
            Parsed simulation result (check ``is_error``)
        """
        result = await self.call(
            client, "simulateTransaction", {"transaction": envelope_xdr}
        )
        return SimulateTransactionResponse.model_validate(result)

    async def send_transaction(
        self, client: httpx.AsyncClient, envelope_xdr: str
    ) -> SendTransactionResponse:
        """Submit a signed transaction envelope.

        Args:
            client: HTTP client instance
            envelope_xdr: Base64 signed TransactionEnvelope

        Returns:
            Admission response; only PENDING means the tx entered the queue
        """
        result = await self.call(
            client, "sendTransaction", {"transaction": envelope_xdr}
        )
        return SendTransactionResponse.model_validate(result)

    async def get_transaction(
        self, client: httpx.AsyncClient, tx_hash: str
    ) -> GetTransactionResponse:
        """Look up a submitted transaction by hash.

        Args:
            client: HTTP client instance
            tx_hash: Hex transaction hash

        Returns:
            Transaction status; NOT_FOUND while still pending
        """
        result = await self.call(client, "getTransaction", {"hash": tx_hash})
        return GetTransactionResponse.model_validate(result)

    async def get_ledger_entries(
        self, client: httpx.AsyncClient, keys: list[str]
    ) -> GetLedgerEntriesResponse:
        """Read raw ledger entries.

        Args:
            client: HTTP client instance
            keys: Base64 LedgerKey XDR values

        Returns:
            Entries that exist (missing keys are omitted by the node)
        """
        result = await self.call(client, "getLedgerEntries", {"keys": keys})
        return GetLedgerEntriesResponse.model_validate(result)

    async def get_latest_ledger(
        self, client: httpx.AsyncClient
    ) -> GetLatestLedgerResponse:
        """Get the latest closed ledger.

        Args:
            client: HTTP client instance

        Returns:
            Latest ledger id, protocol version and sequence
        """
        result = await self.call(client, "getLatestLedger")
        return GetLatestLedgerResponse.model_validate(result)


__all__ = [
    "RPCError",
    "SorobanRPCClient",
]
