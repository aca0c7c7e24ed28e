from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import yaml


@dataclass(frozen=True)
class Settings:
    # Graph API
    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    graph_token: str | None = None

    # On-prem directory
    ldap_server: str | None = None
    ldap_bind_dn: str | None = None
    ldap_password: str | None = None
    ldap_base_dn: str | None = None
    onprem_csv: str | None = None

    # Paths
    log_dir: str = "./logs"
    report_dir: str = "./reports"
    audit_dir: str = "./audit"

    # Logging
    log_level: str = "INFO"

    # HTTP
    timeout_seconds: float = 20.0
    retries: int = 3
    retry_backoff_seconds: float = 0.5
    tls_skip_verify: bool = False
    ca_file: str | None = None

    # Linkage
    settle_seconds: float = 2.0
    search_limit: int = 20


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources_used: list[str]


# имя поля Settings -> переменная окружения
ENV_NAMES: dict[str, str] = {
    "graph_base_url": "HARDMATCH_GRAPH_BASE_URL",
    "graph_token": "HARDMATCH_GRAPH_TOKEN",
    "ldap_server": "HARDMATCH_LDAP_SERVER",
    "ldap_bind_dn": "HARDMATCH_LDAP_BIND_DN",
    "ldap_password": "HARDMATCH_LDAP_PASSWORD",
    "ldap_base_dn": "HARDMATCH_LDAP_BASE_DN",
    "onprem_csv": "HARDMATCH_ONPREM_CSV",
    "log_dir": "HARDMATCH_LOG_DIR",
    "report_dir": "HARDMATCH_REPORT_DIR",
    "audit_dir": "HARDMATCH_AUDIT_DIR",
    "log_level": "HARDMATCH_LOG_LEVEL",
    "timeout_seconds": "HARDMATCH_TIMEOUT_SECONDS",
    "retries": "HARDMATCH_RETRIES",
    "retry_backoff_seconds": "HARDMATCH_RETRY_BACKOFF_SECONDS",
    "tls_skip_verify": "HARDMATCH_TLS_SKIP_VERIFY",
    "ca_file": "HARDMATCH_CA_FILE",
    "settle_seconds": "HARDMATCH_SETTLE_SECONDS",
    "search_limit": "HARDMATCH_SEARCH_LIMIT",
}

_INT_FIELDS = {"retries", "search_limit"}
_FLOAT_FIELDS = {"timeout_seconds", "retry_backoff_seconds", "settle_seconds"}
_BOOL_FIELDS = {"tls_skip_verify"}


def _read_yaml_config(path: Path) -> dict:
    if not path.exists():
        return {}
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data


def _env_get(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def parse_bool(v: str | None) -> bool | None:
    if v is None:
        return None
    vv = v.lower()
    if vv in ("1", "true", "yes", "y"):
        return True
    if vv in ("0", "false", "no", "n"):
        return False
    raise ValueError(f"Invalid boolean value: {v}")


def _parse_env_value(name: str, v: str) -> object:
    if name in _INT_FIELDS:
        return int(v)
    if name in _FLOAT_FIELDS:
        return float(v)
    if name in _BOOL_FIELDS:
        return parse_bool(v)
    return v


def _parse_config_value(name: str, v: object) -> object:
    # YAML может отдать "false" строкой
    if isinstance(v, str):
        return _parse_env_value(name, v.strip())
    return v


def loadSettings(
    config_path: str | None,
    cli_overrides: dict,
) -> LoadedSettings:
    """
    Priority: CLI > ENV > config > defaults
    """
    sources: list[str] = []
    defaults = Settings()

    # 1) config file
    cfg: dict = {}
    if config_path:
        cfg = _read_yaml_config(Path(config_path))
        if cfg:
            sources.append("config")

    # 2) env
    env = {name: _env_get(env_name) for name, env_name in ENV_NAMES.items()}
    if any(v is not None for v in env.values()):
        sources.append("env")

    # merge config -> env -> cli
    merged: dict[str, object] = {name: getattr(defaults, name) for name in ENV_NAMES}
    for name in ENV_NAMES:
        if name in cfg and cfg[name] is not None:
            merged[name] = _parse_config_value(name, cfg[name])

    for name, value in env.items():
        if value is not None:
            merged[name] = _parse_env_value(name, value)

    # 3) apply CLI overrides (only those explicitly passed)
    if any(v is not None for v in cli_overrides.values()):
        sources.append("cli")

    for k, v in cli_overrides.items():
        if v is None:
            continue
        merged[k] = v

    settings = Settings(
        graph_base_url=str(merged["graph_base_url"]),
        graph_token=merged["graph_token"],
        ldap_server=merged["ldap_server"],
        ldap_bind_dn=merged["ldap_bind_dn"],
        ldap_password=merged["ldap_password"],
        ldap_base_dn=merged["ldap_base_dn"],
        onprem_csv=merged["onprem_csv"],
        log_dir=str(merged["log_dir"]),
        report_dir=str(merged["report_dir"]),
        audit_dir=str(merged["audit_dir"]),
        log_level=str(merged["log_level"]),
        timeout_seconds=float(merged["timeout_seconds"]),
        retries=int(merged["retries"]),
        retry_backoff_seconds=float(merged["retry_backoff_seconds"]),
        tls_skip_verify=bool(merged["tls_skip_verify"]),
        ca_file=merged["ca_file"],
        settle_seconds=float(merged["settle_seconds"]),
        search_limit=int(merged["search_limit"]),
    )

    return LoadedSettings(settings=settings, sources_used=sources)
