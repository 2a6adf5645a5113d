"""Deposit and distribute in one Distributor contract call per batch.

Reads a ``vault,asset,user,amount`` CSV, where ``amount`` is the underlying
each user should have deposited on their behalf. Each batch is one
``distribute`` call; the contract reports the shares every recipient got,
which are then checked against the observed balance changes.

Usage:
    dftoken-distribute <demo.csv>
"""

import sys

from rich.console import Console

from src.distribution.operations import BatchOperation, DistributorOperation
from src.distribution.records import DISTRIBUTOR_AMOUNT_COLUMNS
from src.flows.common import BatchedDistributionPipeline, run_cli
from src.helpers.config import NetworkConfig, load_network_config


USAGE = "dftoken-distribute <demo.csv>"


class DistributorPipeline(BatchedDistributionPipeline):
    stage = DistributorOperation.stage
    amount_columns = DISTRIBUTOR_AMOUNT_COLUMNS
    require_asset = True

    def __init__(self, config: NetworkConfig, console: Console | None = None) -> None:
        super().__init__(config, console)
        # Fail before any network call when no distributor is deployed
        self.distributor = config.require_distributor()

    def operation(self) -> BatchOperation:
        return DistributorOperation(
            self.distributor, self.codec.public_key, self.codec
        )


def main(argv: list[str] | None = None) -> int:
    return run_cli(lambda: DistributorPipeline(load_network_config()), argv, USAGE)


if __name__ == "__main__":
    sys.exit(main())
