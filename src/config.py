import importlib
import os
from dataclasses import dataclass, field
from pathlib import Path

_ENV_LOADED = False


def _load_env() -> None:
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    try:
        dotenv = importlib.import_module("dotenv")
    except ImportError as exc:
        raise SystemExit(
            "python-dotenv is required (pip install -e .)"
        ) from exc
    env_path = Path(__file__).resolve().parents[1] / ".env"
    dotenv.load_dotenv(dotenv_path=env_path)
    _ENV_LOADED = True


def get_env(
    name: str, default: str | None = None, required: bool = False
) -> str | None:
    _load_env()
    value = os.environ.get(name, default)
    if required and (value is None or value == ""):
        raise SystemExit(f"{name} env var is required")
    return value


def _get_int(name: str, default: int) -> int:
    value = get_env(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise SystemExit(f"{name} must be an integer, got {value!r}") from exc


def _get_bool(name: str, default: bool) -> bool:
    value = get_env(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings for quoting and swap submission."""

    rpc_urls: list[str] = field(default_factory=list)
    chain_id: int = 1
    routing_api_url: str = "https://api.uniswap.org/v1"
    quote_backend: str = "local"
    use_client_side_router: bool = False
    default_slippage_bips: int = 50
    deadline_seconds: int = 30 * 60
    gas_margin_bips: int = 1_000
    quote_poll_interval: float = 15.0
    max_quote_block_age: int = 10
    private_key: str | None = None

    @classmethod
    def from_env(cls) -> "Settings":
        raw_urls = get_env("RPC_URLS") or get_env("RPC_URL") or ""
        rpc_urls = [url.strip() for url in raw_urls.split(",") if url.strip()]
        backend = (get_env("QUOTE_BACKEND", "local") or "local").lower()
        if backend not in {"local", "quoter"}:
            raise SystemExit(f"QUOTE_BACKEND must be local or quoter, got {backend!r}")
        return cls(
            rpc_urls=rpc_urls,
            chain_id=_get_int("CHAIN_ID", 1),
            routing_api_url=get_env("ROUTING_API_URL", cls.routing_api_url)
            or cls.routing_api_url,
            quote_backend=backend,
            use_client_side_router=_get_bool("USE_CLIENT_SIDE_ROUTER", False),
            default_slippage_bips=_get_int("DEFAULT_SLIPPAGE_BIPS", 50),
            deadline_seconds=_get_int("DEADLINE_SECONDS", 30 * 60),
            gas_margin_bips=_get_int("GAS_MARGIN_BIPS", 1_000),
            quote_poll_interval=float(_get_int("QUOTE_POLL_INTERVAL", 15)),
            max_quote_block_age=_get_int("MAX_QUOTE_BLOCK_AGE", 10),
            private_key=get_env("PRIVATE_KEY"),
        )
