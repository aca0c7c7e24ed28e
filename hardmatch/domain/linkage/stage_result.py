from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from hardmatch.domain.error_codes import ErrorCode
from hardmatch.domain.models import LinkStage

T = TypeVar("T")


class StageStatus(str, Enum):
    OK = "ok"
    SKIP = "skip"
    FAULT = "fault"


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """
    Назначение/ответственность:
        Тегированный результат одной стадии связывания вместо исключения.
    Инварианты/гарантии:
        - status == OK -> value заполнено (для стадий, возвращающих значение).
        - status == FAULT -> error_code и message заполнены.
    """

    stage: LinkStage
    status: StageStatus
    value: T | None = None
    message: str | None = None
    error_code: ErrorCode | None = None

    @property
    def ok(self) -> bool:
        return self.status == StageStatus.OK

    @classmethod
    def success(cls, stage: LinkStage, value: Any = None) -> "StageResult":
        return cls(stage=stage, status=StageStatus.OK, value=value)

    @classmethod
    def skip(cls, stage: LinkStage, message: str) -> "StageResult":
        return cls(stage=stage, status=StageStatus.SKIP, message=message)

    @classmethod
    def fault(cls, stage: LinkStage, message: str, error_code: ErrorCode) -> "StageResult":
        return cls(stage=stage, status=StageStatus.FAULT, message=message, error_code=error_code)

    @classmethod
    def from_exception(cls, stage: LinkStage, exc: BaseException) -> "StageResult":
        """
        Назначение:
            Превращает исключение коллаборатора в FAULT, сохраняя текст ошибки дословно.
        """
        return cls.fault(stage, _exception_message(exc), _exception_code(exc))


def _exception_message(exc: BaseException) -> str:
    text = str(exc)
    return text if text else exc.__class__.__name__


def _exception_code(exc: BaseException) -> ErrorCode:
    code = getattr(exc, "code", None)
    if isinstance(code, ErrorCode):
        return code
    if isinstance(code, str):
        parsed = ErrorCode.parse(code)
        if parsed != ErrorCode.UNEXPECTED_ERROR:
            return parsed
        status_code = getattr(exc, "status_code", None)
        if status_code:
            return ErrorCode.from_status(status_code)
    return ErrorCode.UNEXPECTED_ERROR
