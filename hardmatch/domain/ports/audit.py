from __future__ import annotations

from typing import Protocol

from hardmatch.domain.models import OutcomeRecord


class AuditSinkProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт журнала результатов связывания (только добавление).
    Ошибки/исключения:
        Реализация сама решает, пробрасывать ли ошибку записи; ядро не повторяет запись.
    """

    def record(self, record: OutcomeRecord) -> None: ...


__all__ = ["AuditSinkProtocol"]
