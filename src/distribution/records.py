"""CSV ingestion: header-driven parsing and grouping by vault."""

import csv
from collections.abc import Iterable, Sequence
from pathlib import Path

from pydantic import ValidationError

from src.distribution.constants import (
    ASSET_COLUMNS,
    RECIPIENT_COLUMNS,
    VAULT_COLUMNS,
)
from src.distribution.models import DistributionRecord, Recipient, VaultGroup
from src.helpers.constants import I128_MAX
from src.helpers.logging import get_logger
from src.helpers.parsers import parse_int_amount


logger = get_logger(__name__)

# Amount column per input kind
DISTRIBUTOR_AMOUNT_COLUMNS = ("amount",)
TRANSFER_AMOUNT_COLUMNS = ("df_tokens_to_receive",)
LOST_FUNDS_AMOUNT_COLUMNS = ("underlying_amount",)


class FormatError(Exception):
    """Raised when an input file is missing, empty or malformed."""


class ColumnMap:
    """Resolved positions of the columns a stage needs.

    Headers are matched case-insensitively after trimming; the first alias
    present wins. Unknown columns are ignored.
    """

    def __init__(
        self,
        header: Sequence[str],
        amount_columns: Sequence[str],
        *,
        require_asset: bool = False,
    ) -> None:
        normalized = [h.strip().lower() for h in header]
        self.vault = self._find(normalized, VAULT_COLUMNS, required=True)
        self.recipient = self._find(normalized, RECIPIENT_COLUMNS, required=True)
        self.amount = self._find(normalized, amount_columns, required=True)
        self.asset = self._find(normalized, ASSET_COLUMNS, required=require_asset)

    @staticmethod
    def _find(
        header: list[str], aliases: Sequence[str], *, required: bool
    ) -> int | None:
        for alias in aliases:
            if alias in header:
                return header.index(alias)
        if required:
            msg = f"Missing required column: one of {', '.join(aliases)}"
            raise FormatError(msg)
        return None

    @staticmethod
    def _cell(row: Sequence[str], index: int | None) -> str:
        if index is None or index >= len(row):
            return ""
        return row[index].strip()

    def vault_of(self, row: Sequence[str]) -> str:
        return self._cell(row, self.vault)

    def recipient_of(self, row: Sequence[str]) -> str:
        return self._cell(row, self.recipient)

    def amount_of(self, row: Sequence[str]) -> str:
        return self._cell(row, self.amount)

    def asset_of(self, row: Sequence[str]) -> str | None:
        return self._cell(row, self.asset) or None


def read_distribution_csv(
    path: str | Path,
    amount_columns: Sequence[str] = DISTRIBUTOR_AMOUNT_COLUMNS,
    *,
    require_asset: bool = False,
    absolute_amounts: bool = False,
) -> list[DistributionRecord]:
    """Read and validate a distribution CSV.

    Args:
        path: CSV file path
        amount_columns: Accepted names for the amount column
        require_asset: Whether an asset column must be present
        absolute_amounts: Take the absolute value of amounts (loss reports
            record amounts as negative numbers)

    Returns:
        Records in file order; rows with a non-positive amount are skipped
        with a warning

    Raises:
        FormatError: Missing, empty or undecodable file, missing required column,
            non-integer or out-of-range amount, blank vault or recipient
    """
    path = Path(path)
    if not path.is_file():
        msg = f"CSV file not found: {path}"
        raise FormatError(msg)

    try:
        with path.open(newline="", encoding="utf-8-sig") as f:
            rows = [row for row in csv.reader(f) if any(cell.strip() for cell in row)]
    except (UnicodeDecodeError, csv.Error) as e:
        msg = f"CSV file {path} is not readable UTF-8 CSV: {e}"
        raise FormatError(msg) from e

    if not rows:
        msg = f"CSV file is empty: {path}"
        raise FormatError(msg)

    columns = ColumnMap(rows[0], amount_columns, require_asset=require_asset)
    records: list[DistributionRecord] = []

    for line_no, row in enumerate(rows[1:], start=2):
        raw_amount = columns.amount_of(row)
        try:
            amount = parse_int_amount(raw_amount)
        except ValueError as e:
            msg = f"{path}:{line_no}: {e}"
            raise FormatError(msg) from e

        if absolute_amounts:
            amount = abs(amount)

        if amount <= 0:
            logger.warning(
                "%s:%d: skipping %s with non-positive amount %d",
                path.name,
                line_no,
                columns.recipient_of(row) or "row",
                amount,
            )
            continue

        if amount > I128_MAX:
            msg = f"{path}:{line_no}: amount {amount} exceeds i128 range"
            raise FormatError(msg)

        try:
            records.append(
                DistributionRecord(
                    vault=columns.vault_of(row),
                    asset=columns.asset_of(row),
                    recipient=columns.recipient_of(row),
                    amount=amount,
                )
            )
        except ValidationError as e:
            msg = f"{path}:{line_no}: blank vault or recipient"
            raise FormatError(msg) from e

    logger.info("Loaded %d records from %s", len(records), path)
    return records


def group_by_vault(records: Iterable[DistributionRecord]) -> dict[str, VaultGroup]:
    """Group records by vault, preserving first-seen order.

    The first row of a vault sets its asset; a later row naming a different
    asset is logged and otherwise ignored.
    """
    groups: dict[str, VaultGroup] = {}
    for record in records:
        group = groups.get(record.vault)
        if group is None:
            group = VaultGroup(vault=record.vault, asset=record.asset)
            groups[record.vault] = group
        elif record.asset and group.asset and record.asset != group.asset:
            logger.warning(
                "Vault %s: ignoring asset %s for %s (group asset is %s)",
                record.vault,
                record.asset,
                record.recipient,
                group.asset,
            )
        elif record.asset and not group.asset:
            group.asset = record.asset
        group.recipients.append(Recipient(address=record.recipient, amount=record.amount))
    return groups


__all__ = [
    "DISTRIBUTOR_AMOUNT_COLUMNS",
    "LOST_FUNDS_AMOUNT_COLUMNS",
    "TRANSFER_AMOUNT_COLUMNS",
    "ColumnMap",
    "FormatError",
    "group_by_vault",
    "read_distribution_csv",
]
