"""Tests for the stellar-sdk backed codec."""

import pytest
from stellar_sdk import Keypair, SorobanDataBuilder, StrKey, TransactionEnvelope, scval

from src.distribution.constants import NETWORK_PASSPHRASES
from src.helpers.constants import BASE_FEE
from src.helpers.rpc_models import GetTransactionResponse, SimulateTransactionResponse
from src.ledger.codec import StellarCodec


PASSPHRASE = NETWORK_PASSPHRASES["testnet"]
CONTRACT = StrKey.encode_contract(bytes(32))


@pytest.fixture
def keypair() -> Keypair:
    return Keypair.random()


@pytest.fixture
def codec(keypair: Keypair) -> StellarCodec:
    return StellarCodec(PASSPHRASE, keypair.secret)


class TestEnvelopes:
    """Tests for building, assembling and signing envelopes."""

    def test_public_key(self, codec: StellarCodec, keypair: Keypair) -> None:
        """Test that the codec exposes the signing account id."""
        assert codec.public_key == keypair.public_key

    def test_invalid_secret_raises(self) -> None:
        """Test that a malformed secret is rejected up front."""
        with pytest.raises(ValueError):
            StellarCodec(PASSPHRASE, "not-a-secret")

    def test_build_invocation(self, codec: StellarCodec) -> None:
        """Test that the envelope carries source, sequence, fee and call."""
        envelope_xdr = codec.build_invocation(
            CONTRACT, "balance", [codec.address(codec.public_key)], sequence=41
        )

        envelope = TransactionEnvelope.from_xdr(envelope_xdr, PASSPHRASE)
        tx = envelope.transaction
        assert tx.source.account_id == codec.public_key
        assert tx.sequence == 42
        assert tx.fee == BASE_FEE
        assert len(tx.operations) == 1
        assert envelope.signatures == []

    def test_assemble_applies_simulation(self, codec: StellarCodec) -> None:
        """Test that resource fee and soroban data are applied."""
        envelope_xdr = codec.build_invocation(CONTRACT, "distribute", [], sequence=1)
        soroban_data = SorobanDataBuilder().set_resource_fee(300).build().to_xdr()
        simulation = SimulateTransactionResponse.model_validate(
            {
                "latestLedger": 1,
                "minResourceFee": "300",
                "transactionData": soroban_data,
                "results": [{"auth": [], "xdr": scval.to_void().to_xdr()}],
            }
        )

        assembled = codec.assemble(envelope_xdr, simulation)

        tx = TransactionEnvelope.from_xdr(assembled, PASSPHRASE).transaction
        assert tx.fee == BASE_FEE + 300
        assert tx.soroban_data is not None

    def test_assemble_without_data_raises(self, codec: StellarCodec) -> None:
        """Test that a simulation without resources cannot be assembled."""
        envelope_xdr = codec.build_invocation(CONTRACT, "distribute", [], sequence=1)
        simulation = SimulateTransactionResponse.model_validate({"latestLedger": 1})

        with pytest.raises(ValueError, match="no transaction data"):
            codec.assemble(envelope_xdr, simulation)

    def test_sign_adds_signature(self, codec: StellarCodec) -> None:
        """Test that signing adds exactly one signature."""
        envelope_xdr = codec.build_invocation(CONTRACT, "balance", [], sequence=1)

        signed = codec.sign(envelope_xdr)

        assert len(TransactionEnvelope.from_xdr(signed, PASSPHRASE).signatures) == 1


class TestDecoding:
    """Tests for SCVal and result decoding."""

    def test_decode_i128(self, codec: StellarCodec) -> None:
        """Test that i128 values decode to full-width ints."""
        value = codec.i128(2**100).to_xdr()
        assert codec.decode_scval(value) == 2**100

    def test_decode_address_pairs(self, codec: StellarCodec) -> None:
        """Test that Vec<(Address, i128)> decodes to plain lists."""
        holder = Keypair.random().public_key
        pairs = codec.vec([codec.vec([codec.address(holder), codec.i128(38)])])

        assert codec.decode_scval(pairs.to_xdr()) == [[holder, 38]]

    def test_decode_recipient_struct(self, codec: StellarCodec) -> None:
        """Test that the recipient struct decodes to a dict."""
        holder = Keypair.random().public_key
        value = codec.recipient(holder, 25).to_xdr()

        assert codec.decode_scval(value) == {"address": holder, "amount": 25}

    def test_router_invocation_shape(self, codec: StellarCodec) -> None:
        """Test the router sub-invocation tuple layout."""
        holder = Keypair.random().public_key
        value = codec.invocation(CONTRACT, "transfer", [codec.address(holder)])

        decoded = codec.decode_scval(value.to_xdr())
        assert decoded == [CONTRACT, "transfer", [holder], False]

    def test_result_code_of_empty(self, codec: StellarCodec) -> None:
        """Test that a missing result yields no code."""
        assert codec.result_code(None) is None

    def test_result_code_of_garbage(self, codec: StellarCodec) -> None:
        """Test that undecodable results yield no code."""
        assert codec.result_code("bm90IHhkcg==") is None

    def test_return_value_from_field(self, codec: StellarCodec) -> None:
        """Test that the explicit returnValue field is decoded."""
        response = GetTransactionResponse.model_validate(
            {"status": "SUCCESS", "returnValue": codec.i128(7).to_xdr()}
        )
        assert codec.decode_return_value(response) == 7

    def test_return_value_missing(self, codec: StellarCodec) -> None:
        """Test that a response without value or meta yields None."""
        response = GetTransactionResponse.model_validate({"status": "SUCCESS"})
        assert codec.decode_return_value(response) is None

    def test_return_value_unparseable(self, codec: StellarCodec) -> None:
        """Test that unparseable meta yields None instead of raising."""
        response = GetTransactionResponse.model_validate(
            {"status": "SUCCESS", "resultMetaXdr": "bm90IHhkcg=="}
        )
        assert codec.decode_return_value(response) is None

    def test_account_ledger_key_is_base64(self, codec: StellarCodec) -> None:
        """Test that account keys are encoded as XDR strings."""
        key = codec.account_ledger_key(codec.public_key)
        assert isinstance(key, str)
        assert key
