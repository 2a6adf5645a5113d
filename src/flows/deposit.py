"""Deposit each vault's total and compute per-user share allocations.

For every vault in an analysis report: resolve the underlying asset, check
the distributing account can fund the deposit, deposit through the router,
measure the minted shares from the balance change and split them pro rata.
Writes ``deposit_log_<ts>.csv`` and ``distribution_<ts>.csv``; the latter is
the input of the transfer stage.

Usage:
    dftoken-deposit <analysis.json>
"""

from pathlib import Path
import sys

from pydantic import ValidationError
from rich.console import Console

from src.distribution.allocation import allocate
from src.distribution.audit import AppendOnlyCsv
from src.distribution.constants import (
    DEPOSIT_LOG_HEADER,
    DEPOSIT_METHOD,
    DISTRIBUTION_CSV_HEADER,
    GET_ASSETS_METHOD,
    ROUTER_EXEC_METHOD,
)
from src.distribution.models import (
    AnalysisReport,
    DepositOutcome,
    Recipient,
    VaultGroup,
)
from src.distribution.orchestrator import BATCH_ERRORS
from src.distribution.records import FormatError
from src.flows.common import build_codec, open_gateway, package_logger, run_cli
from src.helpers.config import NetworkConfig, load_network_config
from src.helpers.logging import attach_file_handler, get_logger
from src.helpers.parsers import (
    parse_int_amount,
    shorten_address,
    utc_now_iso,
    utc_timestamp_slug,
)
from src.helpers.pipeline import PipelineBase
from src.ledger.gateway import LedgerGateway


logger = get_logger(__name__)

USAGE = "dftoken-deposit <analysis.json>"


def load_analysis(path: str | Path) -> list[VaultGroup]:
    """Read an analysis report into vault groups.

    Users with a non-positive amount are skipped with a warning.

    Raises:
        FormatError: Missing file, invalid JSON/shape or non-integer amounts
    """
    path = Path(path)
    if not path.is_file():
        msg = f"Analysis file not found: {path}"
        raise FormatError(msg)
    try:
        report = AnalysisReport.model_validate_json(path.read_text(encoding="utf-8"))
    except UnicodeDecodeError as e:
        msg = f"Analysis file {path} is not UTF-8: {e}"
        raise FormatError(msg) from e
    except ValidationError as e:
        msg = f"Invalid analysis file {path}: {e.error_count()} errors"
        raise FormatError(msg) from e

    groups = []
    for vault, analysis in report.vaults.items():
        group = VaultGroup(vault=vault)
        for user in analysis.users:
            try:
                amount = parse_int_amount(user.underlying_amount)
            except ValueError as e:
                msg = f"{path}: vault {vault}, user {user.address}: {e}"
                raise FormatError(msg) from e
            if amount <= 0:
                logger.warning(
                    "Skipping %s in %s with non-positive amount %d",
                    user.address,
                    vault,
                    amount,
                )
                continue
            group.recipients.append(Recipient(address=user.address, amount=amount))
        if group.recipients:
            groups.append(group)
    return groups


def underlying_asset(assets: object) -> str:
    """Address of the first asset in a ``get_assets`` result."""
    if isinstance(assets, list) and assets and isinstance(assets[0], dict):
        address = assets[0].get("address")
        if address:
            return str(address)
    msg = f"Unexpected get_assets result: {assets!r}"
    raise ValueError(msg)


class DepositPipeline(PipelineBase):
    """Deposit per vault and write the share distribution CSV."""

    stage = "deposits"

    def __init__(self, config: NetworkConfig, console: Console | None = None) -> None:
        super().__init__(config.output_dir, console)
        self.config = config
        self.codec = build_codec(config)

    def load(self, source: str) -> list[VaultGroup]:
        return load_analysis(source)

    async def run(self, loaded: list[VaultGroup]) -> None:
        run_id = utc_timestamp_slug()
        deposit_log = AppendOnlyCsv(
            self.stage_dir / f"deposit_log_{run_id}.csv", DEPOSIT_LOG_HEADER
        )
        distribution = AppendOnlyCsv(
            self.stage_dir / f"distribution_{run_id}.csv", DISTRIBUTION_CSV_HEADER
        )
        handler = attach_file_handler(
            package_logger(),
            self.stage_dir / f"deposit_{run_id}.log",
            self.config.log_level,
        )

        try:
            async with open_gateway(self.config, self.codec) as gateway:
                for group in loaded:
                    outcome = await self.deposit_vault(gateway, group)
                    if outcome is None:
                        continue
                    deposit_log.append(outcome.to_row())
                    for row in self.distribution_rows(group, outcome):
                        distribution.append(row)
        finally:
            package_logger().removeHandler(handler)
            handler.close()
            deposit_log.close()
            distribution.close()

        self.console.print(f"[green]✓[/green] Deposit log: {deposit_log.path}")
        self.console.print(f"[green]✓[/green] Distribution: {distribution.path}")

    async def deposit_vault(
        self, gateway: LedgerGateway, group: VaultGroup
    ) -> DepositOutcome | None:
        """Deposit one vault's total; None if the vault was skipped.

        A deposit whose minted amount cannot be measured is still returned,
        with ``minted`` unset and no shares, so it reaches the deposit log.
        """
        caller = gateway.caller
        total = group.total_requested
        label = shorten_address(group.vault)

        try:
            asset = underlying_asset(
                await gateway.simulate(group.vault, GET_ASSETS_METHOD, [], caller)
            )
            balance = await gateway.get_balance(asset, caller, caller)
            if balance < total:
                logger.warning(
                    "Skipping %s: asset balance %d < required %d", label, balance, total
                )
                return None

            before = await gateway.get_balance(group.vault, caller, caller)
            submission = await gateway.invoke(
                self.config.router_contract,
                ROUTER_EXEC_METHOD,
                self.deposit_args(gateway, group.vault, total),
            )
        except BATCH_ERRORS as e:
            logger.error("Deposit into %s failed: %s", label, e)
            return None

        try:
            after = await gateway.get_balance(group.vault, caller, caller)
        except BATCH_ERRORS as e:
            # The deposit is on chain; record it so a re-run does not repeat it
            logger.error(
                "Deposit into %s landed in %s but the share balance could not be "
                "read: %s. Minted shares are unknown and were not allocated",
                label,
                submission.hash,
                e,
            )
            return DepositOutcome(
                vault=group.vault,
                amount_deposited=total,
                minted=None,
                dust=None,
                tx_hash=submission.hash,
                timestamp=utc_now_iso(),
            )

        minted = after - before
        if minted <= 0:
            logger.warning(
                "Deposit into %s (%s) minted no shares; skipping allocation",
                label,
                submission.hash,
            )
            return None

        allocation = allocate(minted, group.recipients)
        group_shares = allocation.shares
        logger.info(
            "%s: deposited %d, minted %d, allocated %d, dust %d",
            label,
            total,
            minted,
            sum(group_shares.values()),
            allocation.dust,
        )
        return DepositOutcome(
            vault=group.vault,
            amount_deposited=total,
            minted=minted,
            dust=allocation.dust,
            tx_hash=submission.hash,
            timestamp=utc_now_iso(),
            shares=group_shares,
        )

    @staticmethod
    def deposit_args(gateway: LedgerGateway, vault: str, amount: int) -> list:
        """Router ``exec`` arguments for a single invested deposit."""
        codec = gateway.codec
        caller = gateway.caller
        deposit = codec.invocation(
            vault,
            DEPOSIT_METHOD,
            [
                codec.vec([codec.i128(amount)]),
                # One stroop of slippage for the vault's rounding
                codec.vec([codec.i128(max(amount - 1, 0))]),
                codec.address(caller),
                codec.boolean(True),
            ],
        )
        return [codec.address(caller), codec.vec([deposit])]

    @staticmethod
    def distribution_rows(
        group: VaultGroup, outcome: DepositOutcome
    ) -> list[list[str]]:
        requested: dict[str, int] = {}
        for r in group.recipients:
            requested[r.address] = requested.get(r.address, 0) + r.amount
        return [
            [group.vault, address, str(requested[address]), str(share)]
            for address, share in outcome.shares.items()
        ]


def main(argv: list[str] | None = None) -> int:
    return run_cli(lambda: DepositPipeline(load_network_config()), argv, USAGE)


if __name__ == "__main__":
    sys.exit(main())
