"""Shared wiring for the command-line pipelines."""

from abc import abstractmethod
import asyncio
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
import logging
import sys

from rich.console import Console

from src.distribution.audit import AuditLog
from src.distribution.models import VaultGroup
from src.distribution.operations import BatchOperation
from src.distribution.orchestrator import DistributionOrchestrator
from src.distribution.records import (
    FormatError,
    group_by_vault,
    read_distribution_csv,
)
from src.helpers.config import ConfigError, NetworkConfig
from src.helpers.http import create_http_client
from src.helpers.pipeline import PipelineBase
from src.helpers.rpc import SorobanRPCClient
from src.ledger.codec import StellarCodec
from src.ledger.gateway import LedgerGateway


# Parent of every module logger; its handlers see all pipeline records
PACKAGE_LOGGER = "src"

error_console = Console(stderr=True)


def build_codec(config: NetworkConfig) -> StellarCodec:
    """Codec for the configured network and key.

    Raises:
        ConfigError: If the secret key is malformed
    """
    try:
        return StellarCodec(
            config.network_passphrase, config.secret_key.get_secret_value()
        )
    except ValueError as e:
        msg = "STELLAR_SECRET_KEY is not a valid secret seed"
        raise ConfigError(msg) from e


@asynccontextmanager
async def open_gateway(
    config: NetworkConfig, codec: StellarCodec | None = None
) -> AsyncIterator[LedgerGateway]:
    """Gateway over one pooled HTTP client, closed when the block exits."""
    rpc = SorobanRPCClient(config.rpc_url)
    async with create_http_client() as client:
        yield LedgerGateway(rpc, codec or build_codec(config), client)


def package_logger() -> logging.Logger:
    return logging.getLogger(PACKAGE_LOGGER)


class BatchedDistributionPipeline(PipelineBase):
    """Read a distribution CSV and run it through the orchestrator.

    Subclasses choose the amount column and the on-chain operation.
    """

    amount_columns: tuple[str, ...]
    require_asset: bool = False

    def __init__(self, config: NetworkConfig, console: Console | None = None) -> None:
        super().__init__(config.output_dir, console)
        self.config = config
        self.codec = build_codec(config)

    def load(self, source: str) -> dict[str, VaultGroup]:
        records = read_distribution_csv(
            source, self.amount_columns, require_asset=self.require_asset
        )
        return group_by_vault(records)

    @abstractmethod
    def operation(self) -> BatchOperation:
        """Operation submitted once per batch."""
        ...

    async def run(self, loaded: dict[str, VaultGroup]) -> None:
        operation = self.operation()
        with AuditLog(self.output_dir, self.stage) as audit:
            audit.attach(package_logger(), self.config.log_level)
            audit.note(
                f"{self.stage} run on {self.config.network} as {operation.caller}, "
                f"{len(loaded)} vaults"
            )
            async with open_gateway(self.config, self.codec) as gateway:
                orchestrator = DistributionOrchestrator(
                    gateway, operation, audit, console=self.console
                )
                summary = await orchestrator.run(loaded)

        self.console.print(
            f"[green]✓[/green] {audit.records} results written to {audit.csv_path}"
        )
        if summary.mismatched:
            self.console.print(
                f"[yellow]{summary.mismatched} MISMATCH rows, "
                f"discrepancy {summary.discrepancy}[/yellow]"
            )


def run_cli(
    build: Callable[[], PipelineBase],
    argv: Sequence[str] | None,
    usage: str,
) -> int:
    """Validate arguments, configuration and input, then run the pipeline.

    Everything that can fail before touching the network does so here and
    maps to exit code 1. Batch failures inside the run do not change the
    exit code.
    """
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) != 1:
        error_console.print(f"Usage: {usage}")
        return 1

    try:
        pipeline = build()
        loaded = pipeline.load(args[0])
    except (ConfigError, FormatError) as e:
        error_console.print(f"[red]Error:[/red] {e}")
        return 1

    asyncio.run(pipeline.run(loaded))
    return 0


__all__ = [
    "BatchedDistributionPipeline",
    "build_codec",
    "error_console",
    "open_gateway",
    "package_logger",
    "run_cli",
]
