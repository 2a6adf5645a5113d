"""Constants for the distribution pipelines."""

NETWORK_PASSPHRASES = {
    "testnet": "Test SDF Network ; September 2015",
    "public": "Public Global Stellar Network ; September 2015",
}

# Batching relay: executes a list of sub-invocations atomically in one tx
MAINNET_ROUTER = "CDAW42JDSDEI2DXEPP4E7OAYNCRUA4LGCZHXCJ4BV5WVI4O4P77FO4UV"

# Distributor: deposit + pro-rata share distribution in one call
DISTRIBUTOR_TESTNET = "CA6LUTIXZN4GYUOQN6EGNQS3WLSMMIRQKEGI36EFK725AEKXQPI6G3VY"

DEFAULT_DISTRIBUTORS: dict[str, str | None] = {
    "testnet": DISTRIBUTOR_TESTNET,
    "public": None,
}

# Contract method names
BALANCE_METHOD = "balance"
DECIMALS_METHOD = "decimals"
GET_ASSETS_METHOD = "get_assets"
ASSET_AMOUNTS_PER_SHARES_METHOD = "get_asset_amounts_per_shares"
DEPOSIT_METHOD = "deposit"
TRANSFER_METHOD = "transfer"
DISTRIBUTE_METHOD = "distribute"
ROUTER_EXEC_METHOD = "exec"

# Column aliases accepted in input CSV headers (lower-cased)
VAULT_COLUMNS = ("vault", "vault_id")
ASSET_COLUMNS = ("asset",)
RECIPIENT_COLUMNS = ("user", "recipient", "user_address", "address")

# Audit output
AUDIT_CSV_HEADER = [
    "vault",
    "user",
    "amount_sent",
    "df_tokens_received",
    "df_balance_before",
    "df_balance_after",
    "df_balance_delta",
    "underlying_estimate",
    "tx_hash",
    "batch_number",
    "status",
    "mismatch",
]

DEPOSIT_LOG_HEADER = [
    "vault_id",
    "amount_deposited",
    "df_tokens_minted",
    "dust",
    "tx_hash",
    "timestamp",
]

DISTRIBUTION_CSV_HEADER = [
    "vault_id",
    "user_address",
    "underlying_amount",
    "df_tokens_to_receive",
]
