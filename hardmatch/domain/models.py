from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class OnPremIdentity:
    """
    Назначение:
        Снимок учётной записи локального каталога (AD) на момент попытки связывания.

    Поля:
        object_guid: objectGUID учётной записи.
        consistency_guid: mS-DS-ConsistencyGuid (байты) или None, если не задан.
        display_name / login_name / principal_name: описательные атрибуты для аудита.
        distinguished_name: DN, только для отображения.
    """

    object_guid: uuid.UUID | None
    consistency_guid: bytes | None = None
    display_name: str = ""
    login_name: str = ""
    principal_name: str = ""
    distinguished_name: str | None = None

    @property
    def search_hint(self) -> str:
        """Подсказка для поиска пары в облаке: UPN, затем логин, затем имя."""
        return self.principal_name or self.login_name or self.display_name


@dataclass(frozen=True)
class CloudIdentity:
    """
    Назначение:
        Снимок пользователя облачного каталога.

    Поля:
        immutable_id: текущее значение onPremisesImmutableId ("" если не задано).
        sync_enabled: onPremisesSyncEnabled, пользователь уже под управлением синхронизации.
    """

    cloud_id: str
    principal_name: str = ""
    mail: str = ""
    immutable_id: str = ""
    sync_enabled: bool = False
    display_name: str = ""


@dataclass(frozen=True)
class Anchor:
    """
    Назначение:
        Значение якоря и его base64-представление.
    """

    raw: bytes
    text: str


class OutcomeKind(str, Enum):
    """
    Назначение:
        Итог попытки связывания. INFO используется только сессией
        (отмена оператором) и никогда не возвращается из link().
    """

    SUCCESS = "Success"
    SKIPPED = "Skipped"
    ERROR = "Error"
    INFO = "Info"


class LinkStage(str, Enum):
    """
    Назначение:
        Стадия попытки связывания, на которой она завершилась.
    """

    COMPUTE_ANCHOR = "ComputeAnchor"
    CHECK_ALREADY_LINKED = "CheckAlreadyLinked"
    APPLY_ANCHOR = "ApplyAnchor"
    VERIFY = "Verify"
    SELECTION = "Selection"


@dataclass(frozen=True)
class SourceDescriptor:
    display_name: str = ""
    login_name: str = ""
    principal_name: str = ""

    @classmethod
    def of(cls, identity: OnPremIdentity | None) -> "SourceDescriptor":
        if identity is None:
            return cls()
        return cls(
            display_name=identity.display_name,
            login_name=identity.login_name,
            principal_name=identity.principal_name,
        )


@dataclass(frozen=True)
class TargetDescriptor:
    principal_name: str = ""
    cloud_id: str = ""

    @classmethod
    def of(cls, identity: CloudIdentity | None) -> "TargetDescriptor":
        if identity is None:
            return cls()
        return cls(principal_name=identity.principal_name, cloud_id=identity.cloud_id)


@dataclass(frozen=True)
class OutcomeRecord:
    """
    Назначение:
        Факт о конкретной попытке связывания, передаётся в аудит.
    Инварианты/гарантии:
        - Создаётся один раз на попытку, не изменяется.
        - error_code заполнен только для kind == ERROR.
    """

    timestamp: str
    source: SourceDescriptor
    target: TargetDescriptor
    anchor_text: str | None
    kind: OutcomeKind
    detail: str
    stage: LinkStage | None = None
    error_code: str | None = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "source": {
                "display_name": self.source.display_name,
                "login_name": self.source.login_name,
                "principal_name": self.source.principal_name,
            },
            "target": {
                "principal_name": self.target.principal_name,
                "cloud_id": self.target.cloud_id,
            },
            "anchor_text": self.anchor_text,
            "kind": self.kind.value,
            "detail": self.detail,
            "stage": self.stage.value if self.stage else None,
            "error_code": self.error_code,
        }


@dataclass
class SessionSummary:
    """
    Назначение:
        Счётчики одной сессии сверки.
    """

    attempts: int = 0
    success: int = 0
    skipped: int = 0
    errors: int = 0
    cancelled: bool = False
    records: list[OutcomeRecord] = field(default_factory=list)

    def count(self, record: OutcomeRecord) -> None:
        self.records.append(record)
        if record.kind == OutcomeKind.SUCCESS:
            self.success += 1
        elif record.kind == OutcomeKind.SKIPPED:
            self.skipped += 1
        elif record.kind == OutcomeKind.ERROR:
            self.errors += 1
