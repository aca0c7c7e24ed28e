from __future__ import annotations

from typing import Protocol

from hardmatch.domain.models import CloudIdentity, OnPremIdentity


class CloudDirectoryProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт чтения/записи пользователей облачного каталога.
    Ограничения:
        Синхронные вызовы; write_anchor вызывается не более одного раза за попытку.
    """

    def fetch_cloud(self, cloud_id: str) -> CloudIdentity:
        """
        Контракт (вход/выход):
            - Вход: идентификатор пользователя в облаке.
            - Выход: свежий снимок CloudIdentity.
        Ошибки/исключения:
            Инфраструктурные ошибки пробрасываются (AppError и наследники).
        """
        ...

    def write_anchor(self, cloud_id: str, anchor_text: str) -> None: ...


class CloudSearchProtocol(Protocol):
    """
    Назначение:
        Поиск кандидатов в облаке для интерактивного выбора.
    """

    def search(self, term: str, limit: int) -> list[CloudIdentity]: ...


class OnPremDirectoryProtocol(Protocol):
    """
    Назначение:
        Поиск учётных записей локального каталога (LDAP, CSV-выгрузка).
    """

    def search(self, term: str, limit: int) -> list[OnPremIdentity]: ...


__all__ = ["CloudDirectoryProtocol", "CloudSearchProtocol", "OnPremDirectoryProtocol"]
