"""Ledger gateway: simulate, submit and await contract invocations."""

import asyncio
from collections.abc import Sequence
from enum import StrEnum
from typing import Any

import httpx
from pydantic import BaseModel, Field
from stellar_sdk import xdr as stellar_xdr

from src.distribution.constants import BALANCE_METHOD
from src.helpers.constants import (
    BASE_FEE,
    POLL_INTERVAL,
    SIMULATION_FEE,
    SIMULATION_TIMEOUT_SECONDS,
    TX_TIMEOUT_SECONDS,
)
from src.helpers.http import retry_with_backoff
from src.helpers.logging import get_logger
from src.helpers.rpc import RPCError, SorobanRPCClient
from src.helpers.rpc_models import (
    GetTransactionResponse,
    GetTransactionStatus,
    SendTransactionStatus,
)
from src.ledger.codec import StellarCodec
from src.ledger.errors import (
    LedgerError,
    SimulationError,
    SubmissionRejected,
    TransactionExpired,
    TransactionFailed,
)


logger = get_logger(__name__)


class SubmissionStatus(StrEnum):
    """Terminal status of a submitted transaction."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


class SubmissionResult(BaseModel):
    """Outcome of one submitted transaction."""

    hash: str
    status: SubmissionStatus
    return_value: Any = None
    ledger: int | None = None
    diagnostics: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is SubmissionStatus.SUCCESS

    def raise_for_status(self) -> "SubmissionResult":
        """Raise if the transaction did not succeed.

        Raises:
            TransactionFailed: Included but failed on chain
            TransactionExpired: Not terminal within the validity window
        """
        if self.status is SubmissionStatus.FAILED:
            code = self.diagnostics.get("result_code") or "unknown result"
            msg = f"Transaction failed: {code}"
            raise TransactionFailed(msg, tx_hash=self.hash, diagnostics=self.diagnostics)
        if self.status is SubmissionStatus.EXPIRED:
            msg = "Transaction expired before reaching a terminal status"
            raise TransactionExpired(msg, tx_hash=self.hash, diagnostics=self.diagnostics)
        return self


class LedgerGateway:
    """Narrow interface to the ledger used by the distribution pipelines.

    Every call is awaited one at a time; the gateway never fans out.
    Submissions are never retried automatically since a resend could
    reuse or skip a sequence number.
    """

    def __init__(
        self,
        rpc: SorobanRPCClient,
        codec: StellarCodec,
        http_client: httpx.AsyncClient,
        *,
        poll_interval: float = POLL_INTERVAL,
        tx_timeout: int = TX_TIMEOUT_SECONDS,
        base_fee: int = BASE_FEE,
    ) -> None:
        """Initialize the gateway.

        Args:
            rpc: Soroban JSON-RPC client
            codec: Codec bound to the network and signing key
            http_client: Pooled HTTP client shared by the whole run
            poll_interval: Seconds between getTransaction polls
            tx_timeout: Validity window of submitted transactions in seconds
            base_fee: Inclusion fee in stroops
        """
        self.rpc = rpc
        self.codec = codec
        self.http_client = http_client
        self.poll_interval = poll_interval
        self.tx_timeout = tx_timeout
        self.base_fee = base_fee

    @property
    def caller(self) -> str:
        """Account id of the distributing account."""
        return self.codec.public_key

    async def simulate(
        self,
        contract: str,
        method: str,
        args: Sequence[stellar_xdr.SCVal],
        caller: str | None = None,
    ) -> Any:
        """Run a read-only simulation and decode its return value.

        Args:
            contract: Contract address
            method: Contract function name
            args: Encoded arguments
            caller: Source account of the simulated transaction

        Returns:
            Decoded return value

        Raises:
            SimulationError: If the node rejects the simulation
        """
        envelope = self.codec.build_invocation(
            contract,
            method,
            args,
            source=caller or self.caller,
            fee=SIMULATION_FEE,
            timeout=SIMULATION_TIMEOUT_SECONDS,
        )
        simulation = await self.rpc.simulate_transaction(self.http_client, envelope)
        if simulation.is_error:
            msg = f"Simulation of {method} rejected: {simulation.error}"
            raise SimulationError(
                msg, diagnostics={"events": simulation.events or []}
            )
        if simulation.retval_xdr is None:
            return None
        return self.codec.decode_scval(simulation.retval_xdr)

    async def load_sequence(self, account_id: str | None = None) -> int:
        """Read the current sequence number of an account.

        Raises:
            LedgerError: If the account does not exist
        """
        account_id = account_id or self.caller
        key = self.codec.account_ledger_key(account_id)
        response = await self.rpc.get_ledger_entries(self.http_client, [key])
        if not response.entries:
            msg = f"Account {account_id} not found on ledger"
            raise LedgerError(msg)
        return self.codec.account_sequence(response.entries[0].xdr)

    async def prepare(
        self,
        contract: str,
        method: str,
        args: Sequence[stellar_xdr.SCVal],
    ) -> str:
        """Build, simulate, assemble and sign one contract invocation.

        Nothing is sent to the network besides the simulation.

        Returns:
            Signed envelope XDR ready for ``submit``

        Raises:
            SimulationError: If the call would revert
            LedgerError: If the distributing account does not exist
        """
        sequence = await self.load_sequence()
        envelope = self.codec.build_invocation(
            contract,
            method,
            args,
            sequence=sequence,
            fee=self.base_fee,
            timeout=self.tx_timeout,
        )

        simulation = await self.rpc.simulate_transaction(self.http_client, envelope)
        if simulation.is_error:
            msg = f"Simulation of {method} rejected: {simulation.error}"
            raise SimulationError(
                msg, diagnostics={"events": simulation.events or []}
            )

        assembled = self.codec.assemble(envelope, simulation)
        return self.codec.sign(assembled)

    async def invoke(
        self,
        contract: str,
        method: str,
        args: Sequence[stellar_xdr.SCVal],
    ) -> SubmissionResult:
        """Prepare and submit one contract invocation.

        Returns:
            Successful SubmissionResult

        Raises:
            SimulationError: If the call would revert
            SubmissionRejected: If the node did not admit the transaction
            TransactionFailed: If the transaction failed on chain
            TransactionExpired: If it did not confirm in time
        """
        signed = await self.prepare(contract, method, args)
        result = await self.submit(signed)
        return result.raise_for_status()

    async def submit(self, signed_xdr: str) -> SubmissionResult:
        """Send a signed envelope and wait for a terminal status.

        Polls getTransaction every ``poll_interval`` seconds until SUCCESS or
        FAILED. If the validity window elapses first the result is EXPIRED.

        Raises:
            SubmissionRejected: If sendTransaction does not answer PENDING
        """
        sent = await self.rpc.send_transaction(self.http_client, signed_xdr)
        if sent.status is not SendTransactionStatus.PENDING:
            code = self.codec.result_code(sent.error_result_xdr)
            diagnostics = {
                "send_status": sent.status.value,
                "result_code": code,
                "events": sent.diagnostic_events_xdr or [],
            }
            msg = f"Submission rejected ({sent.status.value}): {code or 'no result code'}"
            raise SubmissionRejected(msg, tx_hash=sent.hash, diagnostics=diagnostics)

        logger.debug("Submitted %s, awaiting confirmation", sent.hash)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.tx_timeout

        while True:
            response = await self._poll(sent.hash)
            if response is not None and response.status is GetTransactionStatus.SUCCESS:
                return SubmissionResult(
                    hash=sent.hash,
                    status=SubmissionStatus.SUCCESS,
                    return_value=self.codec.decode_return_value(response),
                    ledger=response.ledger,
                )
            if response is not None and response.status is GetTransactionStatus.FAILED:
                return SubmissionResult(
                    hash=sent.hash,
                    status=SubmissionStatus.FAILED,
                    ledger=response.ledger,
                    diagnostics={
                        "result_code": self.codec.result_code(response.result_xdr),
                        "events": response.diagnostic_events_xdr or [],
                    },
                )
            if loop.time() >= deadline:
                return SubmissionResult(
                    hash=sent.hash,
                    status=SubmissionStatus.EXPIRED,
                    diagnostics={"timeout_seconds": self.tx_timeout},
                )
            await asyncio.sleep(self.poll_interval)

    async def _poll(self, tx_hash: str) -> GetTransactionResponse | None:
        # A dropped poll is not a verdict on the transaction; keep waiting.
        try:
            return await self.rpc.get_transaction(self.http_client, tx_hash)
        except (httpx.HTTPError, RPCError) as e:
            logger.warning("Polling %s failed: %s", tx_hash, e)
            return None

    @retry_with_backoff(max_retries=3, base_delay=1.0, retry_on=(httpx.HTTPError,))
    async def get_balance(
        self, token: str, holder: str, caller: str | None = None
    ) -> int:
        """Read a token balance via simulated ``balance(holder)``.

        Transport errors are retried with backoff; anything else propagates.
        """
        value = await self.simulate(
            token, BALANCE_METHOD, [self.codec.address(holder)], caller
        )
        return int(value or 0)


__all__ = [
    "LedgerGateway",
    "SubmissionResult",
    "SubmissionStatus",
]
