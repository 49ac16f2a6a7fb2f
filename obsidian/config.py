"""Obsidian — application configuration.

Loads .env variables into a typed config object and the watchlist from JSON.
Every variable has a default; invalid values fail fast on startup.
"""

import json
import os
import pathlib
from dataclasses import dataclass

from dotenv import load_dotenv

from obsidian.market.models import WatchlistCoin


_CANDLE_PROVIDERS = ("coinbase", "binance")


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    coingecko_base_url: str
    coinbase_base_url: str
    binance_base_url: str
    candle_provider: str  # "coinbase" or "binance"
    candle_limit: int
    top_n: int
    refresh_interval_seconds: int
    request_timeout_seconds: float
    account_usd: float
    watchlist_path: str
    db_path: str
    log_level: str
    api_port: int

    @property
    def candle_source_tag(self) -> str:
        """Source tag stamped on computed structure results."""
        if self.candle_provider == "binance":
            return "BINANCE_1H"
        return "COINBASE_1H"


def _int_var(name: str, default: str, minimum: int = 1) -> int:
    raw = os.environ.get(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float_var(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the offending variable when a
    value cannot be parsed or is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    provider = os.environ.get("CANDLE_PROVIDER", "coinbase").strip().lower()
    if provider not in _CANDLE_PROVIDERS:
        raise ValueError(
            f"CANDLE_PROVIDER must be one of {', '.join(_CANDLE_PROVIDERS)}, "
            f"got {provider!r}"
        )

    return Config(
        coingecko_base_url=os.environ.get(
            "COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3"
        ).rstrip("/"),
        coinbase_base_url=os.environ.get(
            "COINBASE_BASE_URL", "https://api.exchange.coinbase.com"
        ).rstrip("/"),
        binance_base_url=os.environ.get(
            "BINANCE_BASE_URL", "https://api.binance.com"
        ).rstrip("/"),
        candle_provider=provider,
        candle_limit=_int_var("CANDLE_LIMIT", "240"),
        top_n=_int_var("TOP_N", "10"),
        refresh_interval_seconds=_int_var("REFRESH_INTERVAL_SECONDS", "300"),
        request_timeout_seconds=_float_var("REQUEST_TIMEOUT_SECONDS", "15.0"),
        account_usd=_float_var("ACCOUNT_USD", "1000.0"),
        watchlist_path=os.environ.get("WATCHLIST_PATH", "watchlist.json"),
        db_path=os.environ.get("DB_PATH", "data/obsidian.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_port=_int_var("API_PORT", "8080"),
    )


# ── Watchlist ────────────────────────────────────────────────────────────

_DEFAULT_WATCHLIST: list[tuple[str, str, str]] = [
    ("BTC", "bitcoin", "Bitcoin"),
    ("ETH", "ethereum", "Ethereum"),
    ("SOL", "solana", "Solana"),
    ("XRP", "ripple", "XRP"),
    ("USDC", "usd-coin", "USD Coin"),
    ("SHIB", "shiba-inu", "Shiba Inu"),
    ("JASMY", "jasmycoin", "JasmyCoin"),
    ("HBAR", "hedera-hashgraph", "Hedera"),
    ("XLM", "stellar", "Stellar"),
    ("API3", "api3", "API3"),
    ("MINA", "mina-protocol", "Mina"),
    ("SEI", "sei-network", "Sei"),
    ("1INCH", "1inch", "1inch"),
    ("JUP", "jupiter-exchange-solana", "Jupiter"),
    ("YFI", "yearn-finance", "Yearn"),
    ("TRX", "tron", "Tron"),
    ("QNT", "quant-network", "Quant"),
    ("CELO", "celo", "Celo"),
    ("PYTH", "pyth-network", "Pyth Network"),
    ("CHZ", "chiliz", "Chiliz"),
    ("ADA", "cardano", "Cardano"),
    ("COMP", "compound-governance-token", "Compound"),
    ("SUSHI", "sushi", "SushiSwap"),
    ("UNI", "uniswap", "Uniswap"),
    ("INJ", "injective-protocol", "Injective"),
    ("ARB", "arbitrum", "Arbitrum"),
    ("LINK", "chainlink", "Chainlink"),
    ("CRV", "curve-dao-token", "Curve"),
    ("BONK", "bonk", "Bonk"),
    ("LDO", "lido-dao", "Lido"),
    ("SUI", "sui", "Sui"),
    ("ENA", "ethena", "Ethena"),
]


def default_watchlist() -> list[WatchlistCoin]:
    """Return the built-in watchlist used when no JSON file is present."""
    return [WatchlistCoin(symbol=s, cg_id=c, name=n) for s, c, n in _DEFAULT_WATCHLIST]


def load_watchlist(path: str | None = None) -> list[WatchlistCoin]:
    """Load the watchlist from a JSON array of ``{symbol, cg_id, name}``.

    Falls back to :func:`default_watchlist` when *path* does not exist.
    Raises ``ValueError`` for malformed entries.
    """
    if path is None or not pathlib.Path(path).exists():
        return default_watchlist()

    data = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"Watchlist {path} must be a JSON array")

    coins: list[WatchlistCoin] = []
    for entry in data:
        symbol = str(entry.get("symbol", "")).strip().upper() if isinstance(entry, dict) else ""
        if not symbol:
            raise ValueError(f"Watchlist entry without symbol: {entry!r}")
        coins.append(
            WatchlistCoin(
                symbol=symbol,
                cg_id=entry.get("cg_id") or None,
                name=entry.get("name") or None,
            )
        )
    return coins
