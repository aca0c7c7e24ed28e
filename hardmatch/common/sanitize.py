from __future__ import annotations

MASK = "***"

# ключ замаскирован, если содержит любую из подстрок (graph_token, ldap_password, ...)
SENSITIVE_MARKERS: tuple[str, ...] = ("password", "token", "authorization", "secret")


def maskSecret(value: str | None) -> str | None:
    """Токен Graph / пароль LDAP для вывода в консоль и отчёт: '***' или None."""
    if value is None:
        return None
    return MASK


def truncateText(value: str | None, limit: int = 500) -> str | None:
    """Обрезает тело ответа Graph до limit символов (с '...' в конце)."""
    if value is None or len(value) <= limit:
        return value
    if limit <= 3:
        return value[:limit]
    return value[: limit - 3] + "..."


def isSensitiveKey(key: object) -> bool:
    name = str(key).lower()
    return any(marker in name for marker in SENSITIVE_MARKERS)


def maskSecretsInObject(obj: object) -> object:
    """
    Назначение:
        Копия dict/list для контекста отчёта, где значения секретных ключей
        заменены на '***'.
    """
    if isinstance(obj, dict):
        return {
            k: (maskSecret(None if v is None else str(v)) if isSensitiveKey(k) else maskSecretsInObject(v))
            for k, v in obj.items()
        }
    if isinstance(obj, list):
        return [maskSecretsInObject(item) for item in obj]
    return obj
