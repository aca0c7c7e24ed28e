from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """
    Назначение:
        Единая таксономия кодов ошибок для OutcomeRecord и ApiError.
    """

    ANCHOR_DERIVATION_FAILED = "ANCHOR_DERIVATION_FAILED"
    VERIFICATION_MISMATCH = "VERIFICATION_MISMATCH"
    NETWORK_ERROR = "NETWORK_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    INVALID_JSON = "INVALID_JSON"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    THROTTLED = "THROTTLED"
    DIRECTORY_ERROR = "DIRECTORY_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"

    @classmethod
    def from_status(cls, status_code: int | None) -> "ErrorCode":
        """
        Назначение:
            Подбор общего кода по HTTP-статусу.
        """
        if status_code == 401:
            return cls.UNAUTHORIZED
        if status_code == 403:
            return cls.FORBIDDEN
        if status_code == 404:
            return cls.NOT_FOUND
        if status_code == 429:
            return cls.THROTTLED
        return cls.HTTP_ERROR

    @classmethod
    def parse(cls, value: str | None) -> "ErrorCode":
        """Строка -> ErrorCode; неизвестные значения дают UNEXPECTED_ERROR."""
        if not value:
            return cls.UNEXPECTED_ERROR
        try:
            return cls(value)
        except ValueError:
            return cls.UNEXPECTED_ERROR
