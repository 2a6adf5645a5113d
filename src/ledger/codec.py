"""XDR encoding, envelope assembly and signing on top of stellar-sdk.

Everything in here is plumbing: turning Python values into contract call
arguments, building and signing envelopes and turning ledger responses back
into Python values. The gateway owns the network round trips.
"""

from collections.abc import Sequence

from typing import Any

from stellar_sdk import (
    Account,
    Address,
    Keypair,
    TransactionBuilder,
    TransactionEnvelope,
    scval,
)
from stellar_sdk import xdr as stellar_xdr

from src.helpers.constants import BASE_FEE, TX_TIMEOUT_SECONDS
from src.helpers.logging import get_logger
from src.helpers.rpc_models import GetTransactionResponse, SimulateTransactionResponse


logger = get_logger(__name__)


class StellarCodec:
    """Codec bound to one network and one signing key."""

    def __init__(self, network_passphrase: str, secret_key: str) -> None:
        """Initialize the codec.

        Args:
            network_passphrase: Passphrase of the target network
            secret_key: Signing secret (S...) of the distributing account
        """
        self.network_passphrase = network_passphrase
        self._keypair = Keypair.from_secret(secret_key)

    @property
    def public_key(self) -> str:
        """Account id (G...) of the distributing account."""
        return self._keypair.public_key

    # Argument encoding

    @staticmethod
    def address(value: str) -> stellar_xdr.SCVal:
        return scval.to_address(value)

    @staticmethod
    def i128(value: int) -> stellar_xdr.SCVal:
        return scval.to_int128(value)

    @staticmethod
    def boolean(value: bool) -> stellar_xdr.SCVal:
        return scval.to_bool(value)

    @staticmethod
    def symbol(value: str) -> stellar_xdr.SCVal:
        return scval.to_symbol(value)

    @staticmethod
    def vec(items: Sequence[stellar_xdr.SCVal]) -> stellar_xdr.SCVal:
        return scval.to_vec(list(items))

    @classmethod
    def recipient(cls, address: str, amount: int) -> stellar_xdr.SCVal:
        """Encode a ``Recipient { address, amount }`` contract struct."""
        return scval.to_struct({
            "address": cls.address(address),
            "amount": cls.i128(amount),
        })

    @classmethod
    def invocation(
        cls,
        contract_id: str,
        method: str,
        args: Sequence[stellar_xdr.SCVal],
        *,
        can_fail: bool = False,
    ) -> stellar_xdr.SCVal:
        """Encode one router sub-invocation ``(contract, method, args, can_fail)``."""
        return cls.vec([
            cls.address(contract_id),
            cls.symbol(method),
            cls.vec(args),
            cls.boolean(can_fail),
        ])

    # Accounts

    @staticmethod
    def account_ledger_key(account_id: str) -> str:
        """Base64 LedgerKey for an account entry."""
        key = stellar_xdr.LedgerKey(
            type=stellar_xdr.LedgerEntryType.ACCOUNT,
            account=stellar_xdr.LedgerKeyAccount(
                account_id=Keypair.from_public_key(account_id).xdr_account_id()
            ),
        )
        return key.to_xdr()

    @staticmethod
    def account_sequence(entry_xdr: str) -> int:
        """Current sequence number from a LedgerEntryData account XDR."""
        data = stellar_xdr.LedgerEntryData.from_xdr(entry_xdr)
        return data.account.seq_num.sequence_number.int64

    # Envelopes

    def build_invocation(
        self,
        contract_id: str,
        method: str,
        args: Sequence[stellar_xdr.SCVal],
        *,
        source: str | None = None,
        sequence: int = 0,
        fee: int = BASE_FEE,
        timeout: int = TX_TIMEOUT_SECONDS,
    ) -> str:
        """Build an unsigned single-operation contract invocation.

        Args:
            contract_id: Contract address (C...)
            method: Contract function name
            args: Encoded arguments
            source: Source account; defaults to the signing account
            sequence: Current sequence of the source account
            fee: Inclusion fee in stroops
            timeout: Validity window in seconds

        Returns:
            Base64 TransactionEnvelope
        """
        account = Account(source or self.public_key, sequence)
        envelope = (
            TransactionBuilder(
                account,
                network_passphrase=self.network_passphrase,
                base_fee=fee,
            )
            .append_invoke_contract_function_op(
                contract_id=contract_id,
                function_name=method,
                parameters=list(args),
            )
            .set_timeout(timeout)
            .build()
        )
        return envelope.to_xdr()

    def assemble(
        self, envelope_xdr: str, simulation: SimulateTransactionResponse
    ) -> str:
        """Apply simulated resources, resource fee and auth to an envelope.

        Raises:
            ValueError: If the simulation carries no resource data
        """
        if simulation.transaction_data is None or simulation.min_resource_fee is None:
            msg = "Simulation returned no transaction data to assemble"
            raise ValueError(msg)

        envelope = TransactionEnvelope.from_xdr(envelope_xdr, self.network_passphrase)
        envelope.signatures = []
        transaction = envelope.transaction
        transaction.fee += simulation.min_resource_fee
        transaction.soroban_data = stellar_xdr.SorobanTransactionData.from_xdr(
            simulation.transaction_data
        )

        operation = transaction.operations[0]
        if not getattr(operation, "auth", None):
            operation.auth = [
                stellar_xdr.SorobanAuthorizationEntry.from_xdr(entry)
                for entry in simulation.auth
            ]
        return envelope.to_xdr()

    def sign(self, envelope_xdr: str) -> str:
        """Sign an envelope with the distributing account's key."""
        envelope = TransactionEnvelope.from_xdr(envelope_xdr, self.network_passphrase)
        envelope.sign(self._keypair)
        return envelope.to_xdr()

    # Decoding

    def decode_scval(self, value_xdr: str) -> Any:
        """Decode a base64 SCVal into plain Python values."""
        return _to_plain(scval.to_native(stellar_xdr.SCVal.from_xdr(value_xdr)))

    @staticmethod
    def result_code(result_xdr: str | None) -> str | None:
        """Name of the TransactionResult code (e.g. ``txBAD_SEQ``)."""
        if not result_xdr:
            return None
        try:
            result = stellar_xdr.TransactionResult.from_xdr(result_xdr)
        except Exception:
            logger.debug("Could not decode transaction result %s", result_xdr)
            return None
        return result.result.code.name

    def decode_return_value(self, response: GetTransactionResponse) -> Any | None:
        """Contract return value of a completed transaction.

        Returns:
            Decoded value, or None when the response carries none or it
            cannot be parsed
        """
        try:
            if response.return_value_xdr:
                return self.decode_scval(response.return_value_xdr)
            if not response.result_meta_xdr:
                return None
            meta = stellar_xdr.TransactionMeta.from_xdr(response.result_meta_xdr)
            for version in ("v4", "v3"):
                soroban_meta = getattr(getattr(meta, version, None), "soroban_meta", None)
                sc_val = getattr(soroban_meta, "return_value", None)
                if sc_val is not None:
                    return _to_plain(scval.to_native(sc_val))
        except Exception:
            logger.warning(
                "Could not parse return value of %s", response.tx_hash or "transaction"
            )
        return None


def _to_plain(value: Any) -> Any:
    """Replace SDK wrapper types with str/int/list/dict."""
    if isinstance(value, Address):
        return value.address
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value.hex()
    if isinstance(value, (list, tuple)):
        return [_to_plain(item) for item in value]
    if isinstance(value, dict):
        return {_to_plain(k): _to_plain(v) for k, v in value.items()}
    return value


__all__ = ["StellarCodec"]
