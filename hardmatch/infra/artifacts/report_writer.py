from __future__ import annotations

import json
from pathlib import Path

from hardmatch.domain.reporting.collector import ReportCollector, asdict_report


def createEmptyReport(runId: str, command: str, configSources: list[str]) -> ReportCollector:
    """Отчёт команды до запуска; в контекст пишется, откуда взяты настройки."""
    report = ReportCollector(run_id=runId, command=command)
    report.set_context("config", {"sources": list(configSources)})
    return report


def finalizeReport(report: ReportCollector, durationMs: int, logFile: str | None, auditDir: str, reportDir: str) -> None:
    """Закрывает отчёт: длительность, итоговый статус и пути к логу и журналу аудита."""
    report.set_context("runtime", {"log_file": logFile, "audit_dir": auditDir, "report_dir": reportDir})
    report.finish(duration_ms=durationMs)


def writeReportJson(report: ReportCollector, reportDir: str, fileBaseName: str) -> str:
    """
    Назначение:
        Пишет <reportDir>/<fileBaseName>.json атомарно (через .tmp и rename).

    Выход:
        Путь к файлу отчёта.
    """
    target = Path(reportDir) / f"{fileBaseName}.json"
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_suffix(".json.tmp")
    tmp.write_text(json.dumps(asdict_report(report.build()), ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(target)
    return str(target)
