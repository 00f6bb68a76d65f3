import pytest

from ledgerlens.core import settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "LEDGERLENS_AI_TIMEOUT_MS",
        "LEDGERLENS_CACHE_TTL_MS",
        "LEDGERLENS_ANOMALY_SIGMA",
        "OPENAI_MODEL",
        "OPENAI_BASE_URL",
        "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    config = settings.load_engine_config()

    assert config.ai_timeout_ms == 30_000
    assert config.ai_timeout_seconds == 30.0
    assert config.cache_ttl_ms == 300_000
    assert config.max_transactions_per_insight_call == 1000
    assert config.openai_model == "gpt-4o-mini"
    assert config.openai_base_url is None


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGERLENS_AI_TIMEOUT_MS", "2500")
    monkeypatch.setenv("LEDGERLENS_CACHE_TTL_MS", "0")
    monkeypatch.setenv("LEDGERLENS_ANOMALY_SIGMA", "3")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4o")

    config = settings.load_engine_config()

    assert config.ai_timeout_seconds == 2.5
    assert config.cache_ttl_ms == 0
    assert config.anomaly_sigma_threshold == 3.0
    assert config.openai_model == "gpt-4o"


@pytest.mark.parametrize("raw", ["soon", "0", "-5"])
def test_invalid_values_fall_back(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("LEDGERLENS_AI_TIMEOUT_MS", raw)

    assert settings.load_engine_config().ai_timeout_ms == 30_000


@pytest.mark.parametrize(
    ("name", "value", "expected"),
    [
        ("OPENAI_API_KEY", "sk-abcdef", "sk...ef"),
        ("OPENAI_API_KEY", "abc", "****"),
        ("OPENAI_MODEL", "gpt-4o-mini", "gpt-4o-mini"),
        ("OPENAI_BASE_URL", "sk-looks-secret", "sk...et"),
        ("LOG_LEVEL", "INFO\nINJECTED", "INFO\\nINJECTED"),
    ],
)
def test_mask_env_value(name: str, value: str, expected: str) -> None:
    assert settings.mask_env_value(name, value) == expected


def test_ai_enabled(monkeypatch: pytest.MonkeyPatch) -> None:
    assert not settings.ai_enabled()
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    assert settings.ai_enabled()
