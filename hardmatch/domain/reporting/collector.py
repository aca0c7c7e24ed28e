from __future__ import annotations

from dataclasses import asdict
from typing import Any

from hardmatch.common.sanitize import maskSecretsInObject
from hardmatch.common.time import getNowIso
from hardmatch.domain.models import OutcomeKind, OutcomeRecord
from hardmatch.domain.reporting.models import ReportEnvelope, ReportItem, ReportMeta, ReportSummary


class ReportCollector:
    """
    Назначение/ответственность:
        Единый сборщик отчётов для всех команд.
    """

    def __init__(self, run_id: str, command: str, started_at: str | None = None) -> None:
        self.meta = ReportMeta(
            run_id=run_id,
            command=command,
            started_at=started_at or getNowIso(),
        )
        self.summary = ReportSummary()
        self.items: list[ReportItem] = []
        self.context: dict[str, Any] = {}
        self.status: str | None = None

    def set_context(self, name: str, value: dict[str, Any]) -> None:
        self.context[name] = maskSecretsInObject(value)

    def add_outcome(self, record: OutcomeRecord) -> None:
        if record.kind == OutcomeKind.SUCCESS:
            self.summary.success += 1
        elif record.kind == OutcomeKind.SKIPPED:
            self.summary.skipped += 1
        elif record.kind == OutcomeKind.ERROR:
            self.summary.errors += 1
            code = record.error_code or "UNEXPECTED_ERROR"
            self.summary.error_codes[code] = self.summary.error_codes.get(code, 0) + 1
        else:
            self.summary.info += 1
        if record.kind != OutcomeKind.INFO:
            self.summary.attempts_total += 1

        if self._should_store_item():
            self.items.append(ReportItem(status=record.kind.value, payload=record.to_dict()))
        else:
            self.meta.items_truncated = True

    def finish(self, finished_at: str | None = None, duration_ms: int | None = None) -> None:
        self.meta.finished_at = finished_at or getNowIso()
        self.meta.duration_ms = duration_ms
        if self.status is None:
            self.status = self._derive_status()

    def build(self) -> ReportEnvelope:
        return ReportEnvelope(
            status=self.status or self._derive_status(),
            meta=self.meta,
            summary=self.summary,
            items=self.items,
            context=self.context,
        )

    def _should_store_item(self) -> bool:
        limit = self.meta.items_limit
        if limit is None:
            return True
        return len(self.items) < limit

    def _derive_status(self) -> str:
        if self.summary.errors == 0:
            return "SUCCESS"
        if self.summary.success > 0:
            return "PARTIAL"
        return "FAILED"


def asdict_report(envelope: ReportEnvelope) -> dict[str, Any]:
    return {
        "status": envelope.status,
        "meta": asdict(envelope.meta),
        "summary": asdict(envelope.summary),
        "items": [{"status": item.status, **item.payload} for item in envelope.items],
        "context": envelope.context,
    }
