import pytest

from hardmatch.config.config import ENV_NAMES, Settings, loadSettings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for env_name in ENV_NAMES.values():
        monkeypatch.delenv(env_name, raising=False)


def _write_config(tmp_path, text: str) -> str:
    path = tmp_path / "config.yml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_defaults_without_sources():
    loaded = loadSettings(config_path=None, cli_overrides={})

    assert loaded.settings == Settings()
    assert loaded.sources_used == []


def test_config_then_env_then_cli(tmp_path, monkeypatch):
    config_path = _write_config(
        tmp_path,
        "graph_base_url: https://graph.config/v1.0\nretries: 5\nsettle_seconds: 7\nlog_level: DEBUG\n",
    )
    monkeypatch.setenv("HARDMATCH_RETRIES", "4")
    monkeypatch.setenv("HARDMATCH_SETTLE_SECONDS", "1.5")

    loaded = loadSettings(config_path=config_path, cli_overrides={"settle_seconds": 0.0, "log_level": None})

    assert loaded.settings.graph_base_url == "https://graph.config/v1.0"
    assert loaded.settings.retries == 4
    assert loaded.settings.settle_seconds == 0.0
    assert loaded.settings.log_level == "DEBUG"
    assert loaded.sources_used == ["config", "env", "cli"]


def test_env_bool_parsing(monkeypatch):
    monkeypatch.setenv("HARDMATCH_TLS_SKIP_VERIFY", "yes")
    assert loadSettings(config_path=None, cli_overrides={}).settings.tls_skip_verify is True


def test_invalid_env_bool_is_rejected(monkeypatch):
    monkeypatch.setenv("HARDMATCH_TLS_SKIP_VERIFY", "maybe")
    with pytest.raises(ValueError):
        loadSettings(config_path=None, cli_overrides={})


def test_missing_config_file_is_ignored(tmp_path):
    loaded = loadSettings(config_path=str(tmp_path / "absent.yml"), cli_overrides={})
    assert loaded.sources_used == []


def test_quoted_yaml_values_are_parsed(tmp_path):
    config_path = _write_config(tmp_path, 'tls_skip_verify: "false"\nretries: "5"\nsettle_seconds: "0.5"\n')

    settings = loadSettings(config_path=config_path, cli_overrides={}).settings

    assert settings.tls_skip_verify is False
    assert settings.retries == 5
    assert settings.settle_seconds == 0.5


def test_yaml_true_and_invalid_bool(tmp_path):
    assert loadSettings(_write_config(tmp_path, "tls_skip_verify: true\n"), {}).settings.tls_skip_verify is True

    with pytest.raises(ValueError):
        loadSettings(_write_config(tmp_path, 'tls_skip_verify: "sometimes"\n'), {})
