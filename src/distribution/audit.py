"""Append-only audit files written while a run progresses."""

import csv
import logging
from pathlib import Path
from types import TracebackType

from src.distribution.constants import AUDIT_CSV_HEADER
from src.distribution.models import TransferResult
from src.helpers.logging import attach_file_handler
from src.helpers.parsers import utc_now_iso, utc_timestamp_slug


class AppendOnlyCsv:
    """CSV file that is only ever appended to and flushed after each row."""

    def __init__(self, path: Path, header: list[str]) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        is_new = not self.path.exists() or self.path.stat().st_size == 0
        self._file = self.path.open("a", newline="", encoding="utf-8")
        self._writer = csv.writer(self._file)
        if is_new:
            self.append(header)

    def append(self, row: list[str]) -> None:
        self._writer.writerow(row)
        self._file.flush()

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()


class AuditLog:
    """Per-run audit trail: a results CSV and a human-readable log.

    Both files are named after the run start time and live under
    ``<output_dir>/<stage>/``. Every record is flushed as soon as it is
    written so an interrupted run leaves a complete prefix behind.

    Example:
        ```python
        with AuditLog("output", "transfers") as audit:
            audit.attach(logger)
            audit.note("Vault CABC...: 3 batches")
            audit.record(result)
        ```
    """

    def __init__(
        self, output_dir: str | Path, stage: str, run_id: str | None = None
    ) -> None:
        self.run_id = run_id or utc_timestamp_slug()
        self.directory = Path(output_dir) / stage
        self.directory.mkdir(parents=True, exist_ok=True)

        self.csv_path = self.directory / f"{stage}_{self.run_id}.csv"
        self.log_path = self.directory / f"{stage}_{self.run_id}.log"

        self._csv = AppendOnlyCsv(self.csv_path, AUDIT_CSV_HEADER)
        self._log = self.log_path.open("a", encoding="utf-8")
        self._handlers: list[tuple[logging.Logger, logging.Handler]] = []
        self.records = 0

    def __enter__(self) -> "AuditLog":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def attach(self, logger: logging.Logger, log_level: str = "INFO") -> None:
        """Mirror a logger's output into the run log."""
        handler = attach_file_handler(logger, self.log_path, log_level)
        self._handlers.append((logger, handler))

    def note(self, text: str) -> None:
        """Write a free-form, timestamped line to the run log."""
        for line in text.splitlines() or [""]:
            self._log.write(f"[{utc_now_iso()}] {line}\n")
        self._log.flush()

    def record(self, result: TransferResult) -> None:
        """Append one result to the CSV and describe it in the log."""
        self._csv.append(result.to_row())
        self.records += 1
        flag = " MISMATCH" if result.mismatch else ""
        self.note(
            f"batch {result.batch_number} {result.recipient}: "
            f"requested={result.amount_requested} "
            f"confirmed={result.share_tokens_confirmed} "
            f"delta={result.balance_delta} "
            f"status={result.status}{flag} tx={result.tx_hash or '-'}"
        )

    def close(self) -> None:
        for logger, handler in self._handlers:
            logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()
        self._csv.close()
        if not self._log.closed:
            self._log.close()


__all__ = ["AppendOnlyCsv", "AuditLog"]
