"""Tests for the shared CLI wiring and the batched pipelines."""

import csv
import io
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import SecretStr
from rich.console import Console
from stellar_sdk import Keypair, StrKey

from src.distribution.records import FormatError
from src.flows import distributor, transfer
from src.flows.common import build_codec, run_cli
from src.flows.distributor import DistributorPipeline
from src.flows.transfer import TransferPipeline
from src.helpers.config import ConfigError, NetworkConfig
from src.helpers.pipeline import PipelineBase
from src.ledger.gateway import LedgerGateway, SubmissionResult, SubmissionStatus


VAULT = StrKey.encode_contract(bytes([1]) * 32)


def _config(tmp_path: Path, **overrides: Any) -> NetworkConfig:
    values: dict[str, Any] = {
        "network": "testnet",
        "rpc_url": "https://soroban.test",
        "secret_key": SecretStr(Keypair.random().secret),
        "output_dir": str(tmp_path / "out"),
        **overrides,
    }
    return NetworkConfig(**values)


class RecordingPipeline(PipelineBase):
    stage = "recording"

    def __init__(self, output_dir: Path) -> None:
        super().__init__(output_dir, Console(file=io.StringIO()))
        self.ran_with: Any = None

    def load(self, source: str) -> str:
        return source.upper()

    async def run(self, loaded: Any) -> None:
        self.ran_with = loaded


class TestRunCli:
    """Tests for run_cli."""

    def test_wrong_argument_count(self, tmp_path: Path) -> None:
        """Test that usage errors exit with 1."""
        assert run_cli(lambda: RecordingPipeline(tmp_path), [], "x <file>") == 1
        assert run_cli(lambda: RecordingPipeline(tmp_path), ["a", "b"], "x <file>") == 1

    def test_config_error(self) -> None:
        """Test that configuration errors exit with 1."""

        def build() -> PipelineBase:
            msg = "SOROBAN_RPC environment variable is not set"
            raise ConfigError(msg)

        assert run_cli(build, ["input.csv"], "x <file>") == 1

    def test_runs_loaded_input(self, tmp_path: Path) -> None:
        """Test that a valid run returns 0 after running the pipeline."""
        pipeline = RecordingPipeline(tmp_path)

        assert run_cli(lambda: pipeline, ["input.csv"], "x <file>") == 0
        assert pipeline.ran_with == "INPUT.CSV"


class TestEntryPoints:
    """Tests for the transfer and distributor entry points."""

    def test_transfer_missing_secret(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a missing key fails before any network access."""
        monkeypatch.setenv("SOROBAN_RPC", "https://soroban.test")
        monkeypatch.delenv("STELLAR_SECRET_KEY", raising=False)

        assert transfer.main(["distribution.csv"]) == 1

    def test_transfer_undecodable_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that an input that is not UTF-8 exits with 1."""
        monkeypatch.setenv("SOROBAN_RPC", "https://soroban.test")
        monkeypatch.setenv("STELLAR_SECRET_KEY", Keypair.random().secret)
        monkeypatch.setenv("OUTPUT_DIR", str(tmp_path))
        path = tmp_path / "distribution.csv"
        path.write_bytes(b"vault_id,user_address,df_tokens_to_receive\n\xff,GA,1\n")

        assert transfer.main([str(path)]) == 1

    def test_transfer_missing_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a missing input file exits with 1."""
        monkeypatch.setenv("SOROBAN_RPC", "https://soroban.test")
        monkeypatch.setenv("STELLAR_SECRET_KEY", Keypair.random().secret)
        monkeypatch.setenv("OUTPUT_DIR", str(tmp_path))

        assert transfer.main([str(tmp_path / "missing.csv")]) == 1

    def test_distributor_requires_contract(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that mainnet without a distributor address is a config error."""
        monkeypatch.setenv("STELLAR_NETWORK", "public")
        monkeypatch.setenv("SOROBAN_RPC", "https://soroban.test")
        monkeypatch.setenv("STELLAR_SECRET_KEY", Keypair.random().secret)
        monkeypatch.delenv("DISTRIBUTOR_CONTRACT", raising=False)

        assert distributor.main(["demo.csv"]) == 1

    def test_distributor_requires_asset_column(self, tmp_path: Path) -> None:
        """Test that the distributor input must name each vault's asset."""
        path = tmp_path / "demo.csv"
        path.write_text("vault,user,amount\nCV,GA,1\n", encoding="utf-8")
        pipeline = DistributorPipeline(_config(tmp_path), Console(file=io.StringIO()))

        with pytest.raises(FormatError, match="asset"):
            pipeline.load(str(path))

    def test_invalid_secret(self, tmp_path: Path) -> None:
        """Test that a malformed seed is reported as a config error."""
        with pytest.raises(ConfigError, match="STELLAR_SECRET_KEY"):
            build_codec(_config(tmp_path, secret_key=SecretStr("SNOTAKEY")))


class TestBatchedRun:
    """Tests for a full batched run against a mocked ledger."""

    @pytest.mark.asyncio
    async def test_transfer_run_writes_audit(self, tmp_path: Path) -> None:
        """Test that a transfer run reconciles and writes its audit CSV."""
        recipient = Keypair.random().public_key
        source = tmp_path / "distribution.csv"
        source.write_text(
            "vault_id,user_address,underlying_amount,df_tokens_to_receive\n"
            f"{VAULT},{recipient},40,38\n",
            encoding="utf-8",
        )
        output = io.StringIO()
        pipeline = TransferPipeline(_config(tmp_path), Console(file=output, width=200))
        balances = {recipient: 0}

        gateway = AsyncMock(spec=LedgerGateway)
        gateway.codec = pipeline.codec

        def submit(signed_xdr: str) -> SubmissionResult:
            balances[recipient] += 38
            return SubmissionResult(hash="h1", status=SubmissionStatus.SUCCESS)

        gateway.prepare.return_value = "SIGNED"
        gateway.submit.side_effect = submit
        gateway.get_balance.side_effect = (
            lambda token, holder, caller=None: balances.get(holder, 1_000)
        )
        gateway.simulate.return_value = None

        @asynccontextmanager
        async def fake_gateway(*args: Any) -> AsyncIterator[AsyncMock]:
            yield gateway

        with patch("src.flows.common.open_gateway", fake_gateway):
            await pipeline.run(pipeline.load(str(source)))

        [audit_csv] = (tmp_path / "out" / "transfers").glob("transfers_*.csv")
        with audit_csv.open(newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert rows == [
            {
                "vault": VAULT,
                "user": recipient,
                "amount_sent": "38",
                "df_tokens_received": "38",
                "df_balance_before": "0",
                "df_balance_after": "38",
                "df_balance_delta": "38",
                "underlying_estimate": "",
                "tx_hash": "h1",
                "batch_number": "1",
                "status": "success",
                "mismatch": "",
            }
        ]
        assert "1 results written" in output.getvalue()
