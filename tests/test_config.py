import pytest

from config import Settings

ENV_VARS = (
    "RPC_URLS",
    "RPC_URL",
    "CHAIN_ID",
    "ROUTING_API_URL",
    "QUOTE_BACKEND",
    "USE_CLIENT_SIDE_ROUTER",
    "DEFAULT_SLIPPAGE_BIPS",
    "DEADLINE_SECONDS",
    "GAS_MARGIN_BIPS",
    "QUOTE_POLL_INTERVAL",
    "MAX_QUOTE_BLOCK_AGE",
    "PRIVATE_KEY",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = Settings.from_env()
    assert settings.rpc_urls == []
    assert settings.chain_id == 1
    assert settings.default_slippage_bips == 50
    assert settings.deadline_seconds == 1800
    assert settings.gas_margin_bips == 1000
    assert settings.quote_poll_interval == 15.0
    assert settings.max_quote_block_age == 10
    assert settings.quote_backend == "local"
    assert settings.use_client_side_router is False


def test_reads_environment(clean_env):
    clean_env.setenv("RPC_URLS", "https://a.example, https://b.example")
    clean_env.setenv("CHAIN_ID", "5")
    clean_env.setenv("QUOTE_BACKEND", "Quoter")
    clean_env.setenv("USE_CLIENT_SIDE_ROUTER", "yes")
    clean_env.setenv("DEFAULT_SLIPPAGE_BIPS", "100")

    settings = Settings.from_env()

    assert settings.rpc_urls == ["https://a.example", "https://b.example"]
    assert settings.chain_id == 5
    assert settings.quote_backend == "quoter"
    assert settings.use_client_side_router is True
    assert settings.default_slippage_bips == 100


def test_invalid_values_exit(clean_env):
    clean_env.setenv("CHAIN_ID", "mainnet")
    with pytest.raises(SystemExit, match="CHAIN_ID must be an integer"):
        Settings.from_env()

    clean_env.setenv("CHAIN_ID", "1")
    clean_env.setenv("QUOTE_BACKEND", "oracle")
    with pytest.raises(SystemExit, match="QUOTE_BACKEND"):
        Settings.from_env()
