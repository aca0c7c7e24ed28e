from __future__ import annotations

import logging
from typing import Iterable

from hardmatch.domain.models import OutcomeKind, OutcomeRecord
from hardmatch.domain.ports.audit import AuditSinkProtocol
from hardmatch.domain.reporting.collector import ReportCollector
from hardmatch.infra.logging.setup import logEvent


class CompositeAuditSink(AuditSinkProtocol):
    """
    Назначение:
        Передаёт запись во все sink'и по порядку; первая ошибка пробрасывается.
    Паттерн:
        Composite.
    """

    def __init__(self, sinks: Iterable[AuditSinkProtocol]):
        self._sinks = list(sinks)

    def record(self, record: OutcomeRecord) -> None:
        for sink in self._sinks:
            sink.record(record)


class ReportAuditSink(AuditSinkProtocol):
    """
    Назначение:
        Добавляет каждую запись в отчёт команды.
    """

    def __init__(self, report: ReportCollector):
        self.report = report

    def record(self, record: OutcomeRecord) -> None:
        self.report.add_outcome(record)


class LoggingAuditSink(AuditSinkProtocol):
    """
    Назначение:
        Одна строка лога на запись аудита.
    """

    def __init__(self, logger: logging.Logger, run_id: str):
        self.logger = logger
        self.run_id = run_id

    def record(self, record: OutcomeRecord) -> None:
        level = logging.ERROR if record.kind == OutcomeKind.ERROR else logging.INFO
        logEvent(
            self.logger,
            level,
            self.run_id,
            "audit",
            f"kind={record.kind.value} source={record.source.login_name or '-'} "
            f"target={record.target.principal_name or '-'} anchor={record.anchor_text or '-'} "
            f"detail={record.detail}",
        )
