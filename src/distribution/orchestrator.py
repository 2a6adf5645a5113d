"""Sequential batch orchestration with per-batch failure isolation."""

import httpx
from rich.console import Console
from rich.progress import Progress
from rich.table import Table

from src.distribution.audit import AuditLog
from src.distribution.batching import BatchState, VaultRun, VaultRunState, partition
from src.distribution.models import (
    Batch,
    ConversionRate,
    RunSummary,
    TransferResult,
    VaultGroup,
    VaultRunSummary,
)
from src.distribution.operations import BatchOperation
from src.distribution.rates import RateOracle
from src.distribution.reconciliation import (
    SettledTransfer,
    failed_results,
    reconcile,
    snapshot_balances,
)
from src.helpers.constants import MAX_BATCH_SIZE
from src.helpers.logging import get_logger
from src.helpers.parsers import shorten_address
from src.helpers.progress import TaskID, create_batch_progress, track_batches
from src.helpers.rpc import RPCError
from src.ledger.errors import LedgerError
from src.ledger.gateway import LedgerGateway


logger = get_logger(__name__)

# Errors that fail a single batch; anything else aborts the run
BATCH_ERRORS = (LedgerError, RPCError, httpx.HTTPError, ValueError)


class DistributionOrchestrator:
    """Runs every vault group batch by batch, strictly one at a time.

    Per vault: funding pre-flight, balance snapshot, sequential batches
    (a failed batch is recorded and skipped, never retried), a second
    snapshot and reconciliation. Results go to the audit log as soon as
    they are final.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        operation: BatchOperation,
        audit: AuditLog,
        *,
        rate_oracle: RateOracle | None = None,
        batch_size: int = MAX_BATCH_SIZE,
        console: Console | None = None,
    ) -> None:
        self.gateway = gateway
        self.operation = operation
        self.audit = audit
        self.rate_oracle = rate_oracle or RateOracle(gateway)
        self.batch_size = batch_size
        self.console = console or Console()

    @property
    def caller(self) -> str:
        return self.operation.caller

    async def run(self, groups: dict[str, VaultGroup]) -> RunSummary:
        """Process every vault group in input order."""
        summary = RunSummary()
        progress = create_batch_progress(self.console)

        with progress:
            for group in groups.values():
                results = await self.run_vault(group, progress)
                summary.vaults.append(VaultRunSummary.from_results(group.vault, results))

        for vault_summary in summary.vaults:
            self.audit.note(
                f"Vault {vault_summary.vault}: {vault_summary.succeeded} ok, "
                f"{vault_summary.unconfirmed} unconfirmed, {vault_summary.failed} failed, "
                f"{vault_summary.mismatched} mismatched, "
                f"discrepancy {vault_summary.discrepancy}"
            )
        self.console.print(self.summary_table(summary))
        return summary

    async def run_vault(
        self, group: VaultGroup, progress: Progress | None = None
    ) -> list[TransferResult]:
        """Run all batches of one vault and reconcile the outcome."""
        run = VaultRun(group.vault, partition(group.recipients, self.batch_size))
        vault_label = f"Vault {shorten_address(group.vault)}"
        logger.info(
            "%s: %d recipients in %d batches, %d requested",
            vault_label,
            len(group.recipients),
            len(run.batches),
            group.total_requested,
        )
        self.audit.note(
            f"Vault {group.vault}: {len(group.recipients)} recipients, "
            f"{len(run.batches)} batches, total requested {group.total_requested}"
        )

        await self.check_funding(group)

        addresses = [r.address for r in group.recipients]
        before = await snapshot_balances(self.gateway, group.vault, addresses, self.caller)

        task_id = (
            progress.add_task(vault_label, total=len(group.recipients))
            if progress is not None
            else None
        )

        results: list[TransferResult] = []
        settled: list[SettledTransfer] = []
        confirmed: dict[str, int] = {}

        for batch in run.batches:
            execution = run.start_batch(batch)
            execution.advance(BatchState.BUILDING)
            try:
                signed = await self.gateway.prepare(
                    self.operation.contract,
                    self.operation.method,
                    self.operation.build_args(group.vault, batch),
                )
                execution.advance(BatchState.SUBMITTED)
                submission = (await self.gateway.submit(signed)).raise_for_status()
            except BATCH_ERRORS as e:
                reason = e.message if isinstance(e, LedgerError) else str(e)
                execution.fail(reason)
                execution.tx_hash = e.tx_hash if isinstance(e, LedgerError) else None
                logger.error("%s batch %d failed: %s", vault_label, batch.number, reason)
                self.audit.note(
                    e.describe() if isinstance(e, LedgerError) else f"{type(e).__name__}: {e}"
                )
                for result in failed_results(
                    group.vault, batch, reason, before, execution.tx_hash
                ):
                    self.audit.record(result)
                    results.append(result)
            else:
                execution.advance(BatchState.CONFIRMED)
                execution.tx_hash = submission.hash
                settled.extend(
                    await self._settle(
                        group.vault,
                        batch,
                        submission.hash,
                        submission.return_value,
                        confirmed,
                    )
                )

            run.finish_batch(execution)
            if progress is not None and task_id is not None:
                self._track(
                    progress,
                    task_id,
                    batch,
                    len(run.batches),
                    vault_label,
                    execution.state,
                )

        run.advance(VaultRunState.RECONCILING)
        after = await snapshot_balances(
            self.gateway, group.vault, [s.recipient.address for s in settled], self.caller
        )
        for result in reconcile(group.vault, settled, confirmed, before, after):
            self.audit.record(result)
            results.append(result)
        run.advance(VaultRunState.DONE)

        self.console.print(self.results_table(vault_label, results))
        return results

    async def _settle(
        self,
        vault: str,
        batch: Batch,
        tx_hash: str,
        return_value: object,
        confirmed: dict[str, int],
    ) -> list[SettledTransfer]:
        decoded = self.operation.decode(return_value, batch)
        if decoded is None:
            logger.warning(
                "Batch %d (%s) succeeded without a usable return value; "
                "falling back to balance deltas",
                batch.number,
                tx_hash,
            )
        else:
            for address, amount in decoded.items():
                confirmed[address] = confirmed.get(address, 0) + amount

        rate = await self._fetch_rate(vault)
        return [
            SettledTransfer(
                recipient=r,
                batch_number=batch.number,
                tx_hash=tx_hash,
                confirmed=decoded is not None,
                rate=rate,
            )
            for r in batch.recipients
        ]

    async def _fetch_rate(self, vault: str) -> ConversionRate | None:
        try:
            return await self.rate_oracle.fetch_rate(vault, self.caller)
        except BATCH_ERRORS as e:
            logger.warning("Could not read conversion rate of %s: %s", vault, e)
            return None

    async def check_funding(self, group: VaultGroup) -> bool | None:
        """Log whether the caller holds enough of the funding token.

        Only warns; the run continues either way.

        Returns:
            True/False for OK/INSUFFICIENT, None if the check was not possible
        """
        token = self.operation.funding_token(group.vault, group.asset)
        if token is None:
            logger.info("Vault %s: no funding token known, skipping pre-flight", group.vault)
            return None
        try:
            balance = await self.gateway.get_balance(token, self.caller, self.caller)
        except BATCH_ERRORS as e:
            logger.warning("Funding pre-flight for %s failed: %s", group.vault, e)
            return None

        needed = group.total_requested
        if balance >= needed:
            logger.info(
                "Funding OK for %s: balance %d, needed %d", group.vault, balance, needed
            )
            self.audit.note(f"Pre-flight {group.vault}: OK ({balance} >= {needed})")
            return True

        logger.warning(
            "Funding INSUFFICIENT for %s: balance %d, needed %d", group.vault, balance, needed
        )
        self.audit.note(f"Pre-flight {group.vault}: INSUFFICIENT ({balance} < {needed})")
        return False

    @staticmethod
    def _track(
        progress: Progress,
        task_id: TaskID,
        batch: Batch,
        total_batches: int,
        description: str,
        state: BatchState,
    ) -> None:
        track_batches(
            progress,
            task_id,
            batch.number,
            total_batches,
            batch.size,
            description,
            failed=state is BatchState.FAILED,
        )

    @staticmethod
    def results_table(title: str, results: list[TransferResult]) -> Table:
        table = Table(title=title)
        table.add_column("Batch", justify="right")
        table.add_column("Recipient")
        table.add_column("Requested", justify="right")
        table.add_column("Confirmed", justify="right")
        table.add_column("Delta", justify="right")
        table.add_column("Status")

        for result in sorted(results, key=lambda r: r.batch_number):
            if result.failed:
                status = f"[red]{result.status}[/red]"
            elif result.mismatch:
                status = f"[yellow]{result.status} MISMATCH[/yellow]"
            else:
                status = f"[green]{result.status}[/green]"
            table.add_row(
                str(result.batch_number),
                shorten_address(result.recipient),
                str(result.amount_requested),
                str(result.share_tokens_confirmed),
                str(result.balance_delta),
                status,
            )
        return table

    @staticmethod
    def summary_table(summary: RunSummary) -> Table:
        table = Table(title="Run summary")
        table.add_column("Vault")
        table.add_column("OK", justify="right")
        table.add_column("Unconfirmed", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("Mismatched", justify="right")
        table.add_column("Confirmed", justify="right")
        table.add_column("Delta", justify="right")
        table.add_column("Discrepancy", justify="right")

        for v in summary.vaults:
            table.add_row(
                shorten_address(v.vault),
                str(v.succeeded),
                str(v.unconfirmed),
                str(v.failed),
                str(v.mismatched),
                str(v.total_confirmed),
                str(v.total_delta),
                str(v.discrepancy),
            )
        table.add_row(
            "[bold]Total[/bold]",
            str(summary.succeeded),
            str(summary.unconfirmed),
            str(summary.failed),
            str(summary.mismatched),
            str(summary.total_confirmed),
            str(summary.total_delta),
            str(summary.discrepancy),
        )
        return table


__all__ = ["BATCH_ERRORS", "DistributionOrchestrator"]
