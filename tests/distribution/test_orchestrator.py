"""Tests for sequential batch orchestration."""

import csv
import io
import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from rich.console import Console

from src.distribution.audit import AuditLog
from src.distribution.batching import BatchExecution, BatchState
from src.distribution.models import ConversionRate, Recipient, TransferStatus, VaultGroup
from src.distribution.operations import DistributorOperation, RouterTransferOperation
from src.distribution.orchestrator import DistributionOrchestrator
from src.distribution.rates import RateOracle
from src.ledger.codec import StellarCodec
from src.ledger.errors import SimulationError, TransactionFailed
from src.ledger.gateway import LedgerGateway, SubmissionResult, SubmissionStatus


CALLER = "GCALLER"
VAULT = "CVAULT"
ASSET = "CASSET"


class FakeLedger:
    """Balances keyed by token then holder, moved by scripted submissions.

    A scripted SimulationError is raised from ``prepare``; every other
    outcome is applied by ``submit``.
    """

    def __init__(self, balances: dict[str, dict[str, int]]) -> None:
        self.balances = balances
        self.outcomes: list[tuple[dict[str, int], Any]] = []

    def script(self, credits: dict[str, int], outcome: Any) -> None:
        self.outcomes.append((credits, outcome))

    def get_balance(self, token: str, holder: str, caller: str | None = None) -> int:
        return self.balances.get(token, {}).get(holder, 0)

    def prepare(self, contract: str, method: str, args: list) -> str:
        if isinstance(self.outcomes[0][1], SimulationError):
            raise self.outcomes.pop(0)[1]
        return f"SIGNED-{method}"

    def submit(self, signed_xdr: str) -> SubmissionResult:
        credits, outcome = self.outcomes.pop(0)
        for holder, amount in credits.items():
            vault = self.balances.setdefault(VAULT, {})
            vault[holder] = vault.get(holder, 0) + amount
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _success(tx_hash: str, return_value: Any = None) -> SubmissionResult:
    return SubmissionResult(
        hash=tx_hash, status=SubmissionStatus.SUCCESS, return_value=return_value
    )


def _group(*pairs: tuple[str, int], asset: str | None = ASSET) -> VaultGroup:
    return VaultGroup(
        vault=VAULT,
        asset=asset,
        recipients=[Recipient(address=a, amount=n) for a, n in pairs],
    )


def _rows(path: Path) -> list[dict[str, str]]:
    with path.open(newline="", encoding="utf-8") as f:
        return list(csv.DictReader(f))


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger({ASSET: {CALLER: 1_000}})


@pytest.fixture
def gateway(ledger: FakeLedger) -> AsyncMock:
    gateway = AsyncMock(spec=LedgerGateway)
    gateway.get_balance.side_effect = ledger.get_balance
    gateway.prepare.side_effect = ledger.prepare
    gateway.submit.side_effect = ledger.submit
    return gateway


@pytest.fixture
def audit(tmp_path: Path) -> Iterator[AuditLog]:
    log = AuditLog(tmp_path, "distributor", run_id="test")
    yield log
    log.close()


@pytest.fixture
def make_orchestrator(
    gateway: AsyncMock, audit: AuditLog
) -> Callable[..., DistributionOrchestrator]:
    rate_oracle = AsyncMock(spec=RateOracle)
    rate_oracle.fetch_rate.return_value = ConversionRate(
        reference_share_amount=100, reference_underlying_amount=50
    )
    codec = MagicMock(spec=StellarCodec)

    def make(operation_cls: type = DistributorOperation) -> DistributionOrchestrator:
        return DistributionOrchestrator(
            gateway,
            operation_cls("CCONTRACT", CALLER, codec),
            audit,
            rate_oracle=rate_oracle,
            batch_size=2,
            console=Console(file=io.StringIO()),
        )

    return make


class TestRunVault:
    """Tests for DistributionOrchestrator.run_vault."""

    @pytest.mark.asyncio
    async def test_confirmed_batches(
        self,
        ledger: FakeLedger,
        gateway: AsyncMock,
        audit: AuditLog,
        make_orchestrator: Callable[..., DistributionOrchestrator],
    ) -> None:
        """Test that matching return values and deltas give success rows."""
        ledger.script({"GA": 38, "GB": 33}, _success("h1", [["GA", 38], ["GB", 33]]))
        ledger.script({"GC": 24}, _success("h2", [["GC", 24]]))

        results = await make_orchestrator().run_vault(
            _group(("GA", 40), ("GB", 35), ("GC", 25))
        )

        by_recipient = {r.recipient: r for r in results}
        assert by_recipient["GA"].share_tokens_confirmed == 38
        assert by_recipient["GC"].batch_number == 2
        assert by_recipient["GC"].tx_hash == "h2"
        assert by_recipient["GC"].underlying_estimate == 12
        assert all(r.status == TransferStatus.SUCCESS for r in results)
        assert not any(r.mismatch for r in results)
        assert gateway.submit.await_count == 2
        assert len(_rows(audit.csv_path)) == 3

    @pytest.mark.asyncio
    async def test_failed_batch_does_not_stop_the_run(
        self,
        ledger: FakeLedger,
        gateway: AsyncMock,
        audit: AuditLog,
        make_orchestrator: Callable[..., DistributionOrchestrator],
    ) -> None:
        """Test that a failed batch is recorded and the next one still runs."""
        ledger.balances[VAULT] = {"GA": 5, "GB": 7, "GC": 11}
        ledger.script(
            {},
            TransactionFailed(
                "Transaction failed: txFAILED",
                tx_hash="h1",
                diagnostics={"events": ["EVT"]},
            ),
        )
        ledger.script({"GC": 25}, _success("h2", [["GC", 25]]))

        results = await make_orchestrator().run_vault(
            _group(("GA", 40), ("GB", 35), ("GC", 25))
        )

        by_recipient = {r.recipient: r for r in results}
        assert by_recipient["GA"].failed
        assert by_recipient["GA"].status == "failed: Transaction failed: txFAILED"
        assert by_recipient["GA"].tx_hash == "h1"
        assert by_recipient["GB"].failed
        assert by_recipient["GC"].status == TransferStatus.SUCCESS
        assert by_recipient["GA"].balance_before == 5
        assert by_recipient["GB"].balance_before == 7
        assert by_recipient["GC"].balance_before == 11
        assert by_recipient["GC"].balance_delta == 25
        assert not by_recipient["GC"].mismatch
        assert gateway.submit.await_count == 2

        rows = _rows(audit.csv_path)
        assert [row["user"] for row in rows] == ["GA", "GB", "GC"]
        assert "EVT" in audit.log_path.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_simulation_error_fails_only_its_batch(
        self,
        ledger: FakeLedger,
        gateway: AsyncMock,
        make_orchestrator: Callable[..., DistributionOrchestrator],
    ) -> None:
        """Test that a rejected simulation is a batch failure."""
        ledger.script({"GA": 40, "GB": 35}, _success("h1", [["GA", 40], ["GB", 35]]))
        ledger.script({}, SimulationError("Simulation of distribute rejected: trap"))

        states: list[tuple[int, BatchState]] = []
        advance = BatchExecution.advance

        def record(execution: BatchExecution, state: BatchState) -> None:
            states.append((execution.batch.number, state))
            advance(execution, state)

        with patch.object(BatchExecution, "advance", autospec=True, side_effect=record):
            results = await make_orchestrator().run_vault(
                _group(("GA", 40), ("GB", 35), ("GC", 25))
            )

        failed = [r.recipient for r in results if r.failed]
        assert failed == ["GC"]
        assert [s for n, s in states if n == 2] == [
            BatchState.BUILDING,
            BatchState.FAILED,
        ]
        assert gateway.submit.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_return_value_is_unconfirmed(
        self,
        ledger: FakeLedger,
        make_orchestrator: Callable[..., DistributionOrchestrator],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test the balance delta fallback when nothing can be decoded."""
        ledger.script({"GA": 37}, _success("h1", None))

        with caplog.at_level(logging.WARNING):
            results = await make_orchestrator().run_vault(_group(("GA", 40)))

        assert results[0].status == TransferStatus.UNCONFIRMED
        assert results[0].share_tokens_confirmed == 37
        assert not results[0].mismatch
        assert "without a usable return value" in caplog.text

    @pytest.mark.asyncio
    async def test_mismatch_is_flagged(
        self,
        ledger: FakeLedger,
        audit: AuditLog,
        make_orchestrator: Callable[..., DistributionOrchestrator],
    ) -> None:
        """Test that a delta differing from the confirmed amount is flagged."""
        ledger.balances[VAULT] = {"GA": 5}
        ledger.script({"GA": 9}, _success("h1", [["GA", 10]]))

        results = await make_orchestrator().run_vault(_group(("GA", 10)))

        assert results[0].mismatch
        assert results[0].balance_before == 5
        assert results[0].balance_delta == 9
        assert _rows(audit.csv_path)[0]["mismatch"] == "MISMATCH"

    @pytest.mark.asyncio
    async def test_router_transfers_confirm_requested(
        self,
        ledger: FakeLedger,
        make_orchestrator: Callable[..., DistributionOrchestrator],
    ) -> None:
        """Test that router transfers confirm the requested amounts."""
        ledger.balances[VAULT] = {CALLER: 1_000}
        ledger.script({"GA": 38}, _success("h1"))

        results = await make_orchestrator(RouterTransferOperation).run_vault(
            _group(("GA", 38), asset=None)
        )

        assert results[0].status == TransferStatus.SUCCESS
        assert results[0].share_tokens_confirmed == 38

    @pytest.mark.asyncio
    async def test_unexpected_errors_abort(
        self,
        ledger: FakeLedger,
        make_orchestrator: Callable[..., DistributionOrchestrator],
    ) -> None:
        """Test that errors outside the batch error set propagate."""
        ledger.script({}, RuntimeError("bug"))

        with pytest.raises(RuntimeError):
            await make_orchestrator().run_vault(_group(("GA", 1)))


class TestCheckFunding:
    """Tests for the funding pre-flight."""

    @pytest.mark.asyncio
    async def test_sufficient(
        self, make_orchestrator: Callable[..., DistributionOrchestrator]
    ) -> None:
        """Test that enough asset balance reports OK."""
        orchestrator = make_orchestrator()

        assert await orchestrator.check_funding(_group(("GA", 1_000))) is True

    @pytest.mark.asyncio
    async def test_insufficient_only_warns(
        self,
        ledger: FakeLedger,
        gateway: AsyncMock,
        audit: AuditLog,
        make_orchestrator: Callable[..., DistributionOrchestrator],
    ) -> None:
        """Test that a short balance is reported and the run continues."""
        ledger.script({"GA": 2_000}, _success("h1", [["GA", 2_000]]))
        orchestrator = make_orchestrator()
        group = _group(("GA", 2_000))

        assert await orchestrator.check_funding(group) is False
        results = await orchestrator.run_vault(group)

        assert results[0].status == TransferStatus.SUCCESS
        assert gateway.submit.await_count == 1
        assert "INSUFFICIENT" in audit.log_path.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_unknown_token_skips(
        self, make_orchestrator: Callable[..., DistributionOrchestrator]
    ) -> None:
        """Test that no asset means no pre-flight."""
        orchestrator = make_orchestrator()

        assert await orchestrator.check_funding(_group(("GA", 1), asset=None)) is None


class TestRun:
    """Tests for DistributionOrchestrator.run."""

    @pytest.mark.asyncio
    async def test_summary_across_vaults(
        self,
        ledger: FakeLedger,
        make_orchestrator: Callable[..., DistributionOrchestrator],
    ) -> None:
        """Test that per-vault summaries aggregate into the run summary."""
        ledger.script({"GA": 10, "GB": 19}, _success("h1", [["GA", 10], ["GB", 20]]))
        ledger.script({}, TransactionFailed("Transaction failed: txFAILED"))

        summary = await make_orchestrator().run(
            {
                VAULT: _group(("GA", 10), ("GB", 20)),
                "CVAULT2": VaultGroup(
                    vault="CVAULT2", recipients=[Recipient(address="GC", amount=5)]
                ),
            }
        )

        assert [v.vault for v in summary.vaults] == [VAULT, "CVAULT2"]
        assert summary.failed == 1
        assert summary.mismatched == 1
        assert summary.succeeded == 2
        assert summary.total_confirmed == 30
        assert summary.discrepancy == -1
