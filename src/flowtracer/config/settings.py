import os
from dotenv import load_dotenv
load_dotenv()


def _csv_env(name: str, default: str) -> list:
    raw = os.environ.get(name) or default
    return [x.strip() for x in raw.split(",") if x.strip()]


# ---- Solana JSON-RPC ----
# Ordered: primary first, then fallbacks.
SOLANA_RPC_ENDPOINTS = _csv_env(
    "SOLANA_RPC_ENDPOINTS",
    "https://api.mainnet-beta.solana.com,https://solana-rpc.publicnode.com",
)
SOLANA_COMMITMENT = "confirmed"

SOLANA_REQUESTS_PER_SEC = float(os.environ.get("SOLANA_REQUESTS_PER_SEC", "4.0"))
SOLANA_TIMEOUT_SEC = 20

# Program ids
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_ACCOUNT_SIZE = 165
TOKEN_ACCOUNT_MINT_OFFSET = 0
TOKEN_ACCOUNT_OWNER_OFFSET = 32
TOKEN_ACCOUNT_AMOUNT_OFFSET = 64

# ---- SolanaFM labels ----
SOLANAFM_API_KEY = os.environ.get("SOLANAFM_API_KEY")
SOLANAFM_LABELS_URL = "https://api.solana.fm/v1/addresses/labels"
SOLANAFM_REQUESTS_PER_SEC = 1.0
SOLANAFM_TIMEOUT_SEC = 15
SOLANAFM_BATCH_SIZE = 100

# ----- Tracing ------
TRACE_DEFAULT_HOPS = 2
TRACE_MAX_HOPS = 5
TRACE_HISTORY_LIMIT = 100
TRACE_BRANCHING_CAP = 5

# ----- Holder finder ------
HOLDER_MAX_WORKERS = int(os.environ.get("HOLDER_MAX_WORKERS", "4"))
CLASSIFIER_MAX_WORKERS = int(os.environ.get("CLASSIFIER_MAX_WORKERS", "4"))

# Well-known protocol program ids and service addresses (expandable)
KNOWN_ENTITY_ADDRESSES = {
    "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4",   # Jupiter Aggregator v6
    "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8",  # Raydium AMM v4
    "CPMMoo8L3F4NbTegBCKVNunggL7H1ZpdTHKxQB5qKP1C",  # Raydium CP-Swap
    "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc",   # Orca Whirlpools
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
}

EXCHANGE_KEYWORDS = (
    "exchange", "binance", "coinbase", "kraken", "okx", "bybit", "cex",
    "gate", "kucoin", "mexc", "bitfinex", "bitstamp", "huobi",
)

PROTOCOL_KEYWORDS = (
    "jupiter", "raydium", "orca", "serum", "openbook", "mango", "saber",
    "marinade", "solblaze", "wormhole", "pyth", "protocol",
)
