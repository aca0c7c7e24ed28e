from __future__ import annotations

from dataclasses import dataclass

from hardmatch.domain.error_codes import ErrorCode
from hardmatch.domain.linkage.stage_result import StageResult, StageStatus
from hardmatch.domain.models import LinkStage, OutcomeKind

DETAIL_SUCCESS = "anchor applied and verified"
DETAIL_ALREADY_LINKED = "already under directory-sync control"

_FAULT_PREFIX: dict[LinkStage, str] = {
    LinkStage.COMPUTE_ANCHOR: "anchor computation failed",
    LinkStage.CHECK_ALREADY_LINKED: "cloud identity read failed",
    LinkStage.APPLY_ANCHOR: "anchor write failed",
    LinkStage.SELECTION: "selection failed",
}


@dataclass(frozen=True)
class Classification:
    kind: OutcomeKind
    detail: str
    error_code: str | None = None


def classify(result: StageResult) -> Classification:
    """
    Назначение:
        Отображает терминальное состояние попытки в (OutcomeKind, detail).

    Контракт (вход/выход):
        Вход: StageResult стадии, на которой попытка завершилась.
        Выход: Classification; для ERROR текст исходной ошибки входит в detail дословно.

    Ошибки/исключения:
        ValueError для нетерминального состояния (OK на стадии до Verify).
    """
    if result.status == StageStatus.OK:
        if result.stage == LinkStage.VERIFY:
            return Classification(kind=OutcomeKind.SUCCESS, detail=DETAIL_SUCCESS)
        raise ValueError(f"stage {result.stage.value} is not terminal")

    if result.status == StageStatus.SKIP:
        detail = result.message or DETAIL_ALREADY_LINKED
        return Classification(kind=OutcomeKind.SKIPPED, detail=detail)

    code = result.error_code or ErrorCode.UNEXPECTED_ERROR
    return Classification(
        kind=OutcomeKind.ERROR,
        detail=_fault_detail(result, code),
        error_code=code.value,
    )


def _fault_detail(result: StageResult, code: ErrorCode) -> str:
    message = result.message or "unknown error"
    if result.stage == LinkStage.VERIFY:
        if code == ErrorCode.VERIFICATION_MISMATCH:
            return f"verification mismatch: {message}"
        return f"verification read failed: {message}"
    prefix = _FAULT_PREFIX.get(result.stage)
    if prefix is None:
        return message
    return f"{prefix}: {message}"
