"""Summarize a loss report (or demo CSV) per vault.

Offline stage: reads the CSV, groups recipients by vault and writes an
analysis JSON that the deposit stage consumes.

Usage:
    dftoken-analyze <lost_funds.csv | demo.csv>
"""

import csv
from pathlib import Path
import sys

from rich.console import Console
from rich.table import Table

from src.distribution.models import (
    AnalysisReport,
    AnalysisUser,
    VaultAnalysis,
    VaultGroup,
)
from src.distribution.records import (
    DISTRIBUTOR_AMOUNT_COLUMNS,
    LOST_FUNDS_AMOUNT_COLUMNS,
    FormatError,
    group_by_vault,
    read_distribution_csv,
)
from src.flows.common import run_cli
from src.helpers.config import get_optional_env
from src.helpers.constants import DEFAULT_OUTPUT_DIR
from src.helpers.logging import get_logger
from src.helpers.parsers import (
    format_token_amount,
    shorten_address,
    utc_now_iso,
    utc_timestamp_slug,
)
from src.helpers.pipeline import PipelineBase


logger = get_logger(__name__)

USAGE = "dftoken-analyze <lost_funds.csv | demo.csv>"


def detect_format(path: str | Path) -> str:
    """Tell a loss report (``underlying_amount``) from a demo CSV (``amount``).

    Raises:
        FormatError: If the file is missing, undecodable or has no header
    """
    path = Path(path)
    if not path.is_file():
        msg = f"CSV file not found: {path}"
        raise FormatError(msg)
    try:
        with path.open(newline="", encoding="utf-8-sig") as f:
            header = next(csv.reader(f), [])
    except (UnicodeDecodeError, csv.Error) as e:
        msg = f"CSV file {path} is not readable UTF-8 CSV: {e}"
        raise FormatError(msg) from e
    columns = {h.strip().lower() for h in header}
    if not columns:
        msg = f"CSV file is empty: {path}"
        raise FormatError(msg)
    return "lost_funds" if "underlying_amount" in columns else "demo"


def build_report(source: str, groups: dict[str, VaultGroup]) -> AnalysisReport:
    vaults = {
        vault: VaultAnalysis(
            amount=str(group.total_requested),
            user_count=len(group.recipients),
            users=[
                AnalysisUser(address=r.address, underlying_amount=str(r.amount))
                for r in group.recipients
            ],
        )
        for vault, group in groups.items()
    }
    return AnalysisReport(
        timestamp=utc_now_iso(),
        source_csv=source,
        total_users=sum(v.user_count for v in vaults.values()),
        total_vaults=len(vaults),
        vaults=vaults,
    )


class AnalyzePipeline(PipelineBase):
    """Group a CSV by vault and write ``analysis_<ts>.json``."""

    stage = "analysis"

    def load(self, source: str) -> tuple[str, dict[str, VaultGroup]]:
        kind = detect_format(source)
        if kind == "lost_funds":
            records = read_distribution_csv(
                source, LOST_FUNDS_AMOUNT_COLUMNS, absolute_amounts=True
            )
        else:
            records = read_distribution_csv(source, DISTRIBUTOR_AMOUNT_COLUMNS)
        logger.info("Detected %s format in %s", kind, source)
        return source, group_by_vault(records)

    async def run(self, loaded: tuple[str, dict[str, VaultGroup]]) -> None:
        source, groups = loaded
        report = build_report(source, groups)

        self.console.print(self.report_table(report))

        output = self.stage_dir / f"analysis_{utc_timestamp_slug()}.json"
        output.write_text(report.model_dump_json(indent=2), encoding="utf-8")
        self.console.print(f"[green]✓[/green] Analysis written to {output}")

    @staticmethod
    def report_table(report: AnalysisReport) -> Table:
        table = Table(
            title=f"{report.total_vaults} vaults, {report.total_users} users"
        )
        table.add_column("Vault")
        table.add_column("Users", justify="right")
        table.add_column("Underlying", justify="right")

        ranked = sorted(
            report.vaults.items(), key=lambda item: item[1].user_count, reverse=True
        )
        for vault, analysis in ranked:
            table.add_row(
                shorten_address(vault, 20),
                str(analysis.user_count),
                format_token_amount(int(analysis.amount)),
            )
        return table


def main(argv: list[str] | None = None) -> int:
    output_dir = get_optional_env("OUTPUT_DIR", DEFAULT_OUTPUT_DIR) or DEFAULT_OUTPUT_DIR
    return run_cli(lambda: AnalyzePipeline(output_dir, Console()), argv, USAGE)


if __name__ == "__main__":
    sys.exit(main())
