"""Batched dfToken transfers through the router.

Reads a distribution CSV (``vault_id,user_address,...,df_tokens_to_receive``)
as written by the deposit stage and sends each vault's shares in batches of
router ``exec`` calls, reconciling balances afterwards.

Usage:
    dftoken-transfer <distribution.csv>
"""

import sys

from src.distribution.operations import BatchOperation, RouterTransferOperation
from src.distribution.records import TRANSFER_AMOUNT_COLUMNS
from src.flows.common import BatchedDistributionPipeline, run_cli
from src.helpers.config import load_network_config


USAGE = "dftoken-transfer <distribution.csv>"


class TransferPipeline(BatchedDistributionPipeline):
    stage = RouterTransferOperation.stage
    amount_columns = TRANSFER_AMOUNT_COLUMNS

    def operation(self) -> BatchOperation:
        return RouterTransferOperation(
            self.config.router_contract, self.codec.public_key, self.codec
        )


def main(argv: list[str] | None = None) -> int:
    return run_cli(lambda: TransferPipeline(load_network_config()), argv, USAGE)


if __name__ == "__main__":
    sys.exit(main())
