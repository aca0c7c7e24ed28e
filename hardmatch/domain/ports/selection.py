from __future__ import annotations

from typing import Protocol

from hardmatch.domain.models import CloudIdentity, OnPremIdentity


class SelectionProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт выбора пары учётных записей (интерактивно или по сценарию).
    Контракт:
        None от select_* означает отмену, а не ошибку.
    """

    def select_on_prem(self) -> OnPremIdentity | None: ...

    def select_cloud(self, hint: str) -> CloudIdentity | None: ...

    def confirm_continue(self) -> bool: ...


__all__ = ["SelectionProtocol"]
