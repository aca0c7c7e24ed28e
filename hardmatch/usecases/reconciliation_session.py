from __future__ import annotations

import logging
from typing import Callable

from hardmatch.common.time import getNowIso
from hardmatch.domain.linkage.classifier import classify
from hardmatch.domain.linkage.engine import LinkageEngine
from hardmatch.domain.linkage.stage_result import StageResult
from hardmatch.domain.models import (
    CloudIdentity,
    LinkStage,
    OnPremIdentity,
    OutcomeKind,
    OutcomeRecord,
    SessionSummary,
    SourceDescriptor,
    TargetDescriptor,
)
from hardmatch.domain.ports.audit import AuditSinkProtocol
from hardmatch.domain.ports.directory import CloudDirectoryProtocol
from hardmatch.domain.ports.selection import SelectionProtocol
from hardmatch.infra.logging.setup import logEvent

DETAIL_CANCELLED = "selection cancelled by operator"
DETAIL_NO_CLOUD = "no cloud identity selected"


def identity_key(identity: OnPremIdentity) -> str:
    """Ключ учётной записи AD для отметки «уже обработана» в рамках сессии."""
    if identity.object_guid is not None:
        return str(identity.object_guid)
    return (identity.login_name or identity.principal_name or identity.display_name).lower()


class ReconciliationSession:
    """
    Назначение/ответственность:
        Цикл сверки: выбор пары -> link() -> аудит -> вопрос «продолжить?».
    Инварианты/гарантии:
        - Попытки строго последовательны.
        - Отмена возможна только между попытками.
        - Ошибки попытки превращаются в OutcomeRecord; сессию завершает только отмена
          или отказ продолжать.
    Взаимодействия:
        Состояние (processed, running, summary) принадлежит объекту сессии,
        вызывающая сторона владеет самим объектом.
    """

    def __init__(
        self,
        selection: SelectionProtocol,
        directory: CloudDirectoryProtocol,
        audit: AuditSinkProtocol,
        engine: LinkageEngine,
        logger: logging.Logger | None = None,
        run_id: str = "",
        clock: Callable[[], str] = getNowIso,
    ):
        self.selection = selection
        self.directory = directory
        self.audit = audit
        self.engine = engine
        self.logger = logger
        self.run_id = run_id
        self.clock = clock
        self.processed: dict[str, OutcomeKind] = {}
        self.running = False
        self.summary = SessionSummary()

    def run(self) -> SessionSummary:
        """
        Контракт (вход/выход):
            Выход: SessionSummary с итогами всех попыток.
        Ошибки/исключения:
            Пробрасываются только ошибки аудита, если их пробрасывает сам аудит.
            Сбой выбора превращается в ERROR-запись, сессия продолжается.
        """
        self.running = True
        self._log(logging.INFO, "session started")
        try:
            while self.running:
                try:
                    on_prem = self.selection.select_on_prem()
                except Exception as exc:
                    self.summary.attempts += 1
                    self._record_selection_fault(None, exc)
                else:
                    if on_prem is None:
                        self._record_cancelled()
                        break
                    self.summary.attempts += 1
                    self._attempt(on_prem)
                if not self._confirm_continue():
                    break
        finally:
            self.running = False
        self._log(
            logging.INFO,
            f"session finished attempts={self.summary.attempts} success={self.summary.success} "
            f"skipped={self.summary.skipped} errors={self.summary.errors} cancelled={self.summary.cancelled}",
        )
        return self.summary

    def stop(self) -> None:
        """Завершить сессию после текущей попытки."""
        self.running = False

    def is_processed(self, identity: OnPremIdentity) -> OutcomeKind | None:
        return self.processed.get(identity_key(identity))

    def _confirm_continue(self) -> bool:
        try:
            if self.selection.confirm_continue():
                return True
        except Exception as exc:
            self._log(logging.ERROR, f"continue prompt failed, ending session: {exc}")
            return False
        self._log(logging.INFO, "operator declined to continue")
        return False

    def _record_cancelled(self) -> None:
        self.summary.cancelled = True
        self._record(
            OutcomeRecord(
                timestamp=self.clock(),
                source=SourceDescriptor(),
                target=TargetDescriptor(),
                anchor_text=None,
                kind=OutcomeKind.INFO,
                detail=DETAIL_CANCELLED,
                stage=LinkStage.SELECTION,
            )
        )

    def _record_selection_fault(self, on_prem: OnPremIdentity | None, exc: Exception) -> None:
        classification = classify(StageResult.from_exception(LinkStage.SELECTION, exc))
        self._log(logging.ERROR, f"selection failed: {exc}")
        record = OutcomeRecord(
            timestamp=self.clock(),
            source=SourceDescriptor.of(on_prem),
            target=TargetDescriptor(),
            anchor_text=None,
            kind=classification.kind,
            detail=classification.detail,
            stage=LinkStage.SELECTION,
            error_code=classification.error_code,
        )
        if on_prem is not None:
            self.processed[identity_key(on_prem)] = record.kind
        self._record(record)

    def _select_cloud(self, on_prem: OnPremIdentity) -> CloudIdentity | None:
        hint = on_prem.search_hint
        cloud = self.selection.select_cloud(hint)
        if cloud is None:
            self._log(logging.INFO, f"no cloud identity selected for {on_prem.login_name}, retrying selection")
            cloud = self.selection.select_cloud(hint)
        return cloud

    def _attempt(self, on_prem: OnPremIdentity) -> None:
        try:
            cloud = self._select_cloud(on_prem)
        except Exception as exc:
            self._record_selection_fault(on_prem, exc)
            return
        if cloud is None:
            classification = classify(StageResult.skip(LinkStage.SELECTION, DETAIL_NO_CLOUD))
            record = OutcomeRecord(
                timestamp=self.clock(),
                source=SourceDescriptor.of(on_prem),
                target=TargetDescriptor(),
                anchor_text=None,
                kind=classification.kind,
                detail=classification.detail,
                stage=LinkStage.SELECTION,
            )
        else:
            cloud_id = cloud.cloud_id
            record = self.engine.link(
                on_prem,
                cloud,
                fetch_current=lambda: self.directory.fetch_cloud(cloud_id),
                apply=self.directory.write_anchor,
                refetch=lambda: self.directory.fetch_cloud(cloud_id),
            )
        self.processed[identity_key(on_prem)] = record.kind
        self._record(record)

    def _record(self, record: OutcomeRecord) -> None:
        self.summary.count(record)
        try:
            self.audit.record(record)
        except Exception as exc:
            self._log(logging.ERROR, f"audit record failed: {exc}")
            raise

    def _log(self, level: int, message: str) -> None:
        if self.logger is None:
            return
        logEvent(self.logger, level, self.run_id, "session", message)
