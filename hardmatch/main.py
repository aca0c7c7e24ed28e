from __future__ import annotations

import logging
import sqlite3
import sys
import time
import uuid
from pathlib import Path

import typer

from hardmatch.common.run_id import generate_run_id
from hardmatch.common.sanitize import maskSecret
from hardmatch.common.time import getDurationMs
from hardmatch.config.config import Settings, loadSettings
from hardmatch.domain.linkage.anchor import anchor_from_text, derive_anchor, guid_from_anchor, parse_consistency_guid
from hardmatch.domain.linkage.engine import LinkageEngine
from hardmatch.domain.models import OnPremIdentity
from hardmatch.domain.ports.directory import OnPremDirectoryProtocol
from hardmatch.infra.artifacts.report_writer import createEmptyReport, finalizeReport, writeReportJson
from hardmatch.infra.audit import CompositeAuditSink, LoggingAuditSink, ReportAuditSink, SqliteAuditRepository
from hardmatch.infra.audit.schema import ensure_audit_schema
from hardmatch.infra.audit.sqlite_engine import SqliteEngine, getAuditDbPath, openAuditDb
from hardmatch.infra.console.selection import ConsoleSelection
from hardmatch.infra.http.graph_client import ApiError, GraphApiClient
from hardmatch.infra.logging.setup import (
    StdStreamToLogger,
    TeeStream,
    closeCommandLogger,
    createCommandLogger,
    logEvent,
    mapLogLevel,
)
from hardmatch.infra.sources.csv_directory import CsvOnPremDirectory
from hardmatch.infra.sources.ldap_directory import LdapOnPremDirectory
from hardmatch.infra.target.graph_directory import GraphCloudDirectory
from hardmatch.usecases.reconciliation_session import ReconciliationSession

app = typer.Typer(no_args_is_help=True, add_completion=False)
auditApp = typer.Typer(no_args_is_help=True)


def ensureDir(path: str) -> None:
    """
    Назначение:
        Создаёт каталог, если он отсутствует.
    """
    Path(path).mkdir(parents=True, exist_ok=True)


def readSecretFile(path: str, optionName: str) -> str:
    """
    Назначение:
        Читает секрет (токен/пароль) из файла; при ошибке exit code 2.
    """
    p = Path(path)
    if not p.exists() or not p.is_file():
        typer.echo(f"ERROR: {optionName} not found: {path}", err=True)
        raise typer.Exit(code=2)
    return p.read_text(encoding="utf-8").strip()


def requireGraph(settings: Settings) -> None:
    """
    Назначение:
        Проверяет наличие параметров Graph API для команд, которым нужен облачный каталог.

    Поведение:
        - Если чего-то не хватает, exit code 2.
    """
    missing = []
    if not settings.graph_base_url:
        missing.append("graph_base_url")
    if not settings.graph_token:
        missing.append("graph_token")
    if missing:
        typer.echo(f"ERROR: missing Graph settings: {', '.join(missing)}", err=True)
        raise typer.Exit(code=2)


def requireOnPrem(settings: Settings) -> None:
    """
    Назначение:
        Проверяет, что задан источник локального каталога (CSV или LDAP).
    """
    if settings.onprem_csv:
        p = Path(settings.onprem_csv)
        if not p.exists() or not p.is_file():
            typer.echo(f"ERROR: on-prem CSV not found: {settings.onprem_csv}", err=True)
            raise typer.Exit(code=2)
        return
    missing = []
    if not settings.ldap_server:
        missing.append("ldap_server")
    if not settings.ldap_base_dn:
        missing.append("ldap_base_dn")
    if missing:
        typer.echo(f"ERROR: missing on-prem settings (--onprem-csv or {', '.join(missing)})", err=True)
        raise typer.Exit(code=2)


def printRunHeader(runId: str, command: str, settings: Settings, sources: list[str]) -> None:
    """
    Назначение:
        Печатает безопасную сводку параметров запуска (без секретов).
    """
    typer.echo(
        f"run_id={runId} command={command} "
        f"graph_base_url={settings.graph_base_url} graph_token={maskSecret(settings.graph_token)} "
        f"ldap_server={settings.ldap_server} ldap_password={maskSecret(settings.ldap_password)} "
        f"onprem_csv={settings.onprem_csv} sources={sources} log_level={settings.log_level}"
    )


def createGraphClient(settings: Settings, transport=None) -> GraphApiClient:
    return GraphApiClient(
        baseUrl=settings.graph_base_url,
        token=settings.graph_token or "",
        timeoutSeconds=settings.timeout_seconds,
        tlsSkipVerify=settings.tls_skip_verify,
        caFile=settings.ca_file,
        retries=settings.retries,
        retryBackoffSeconds=settings.retry_backoff_seconds,
        transport=transport,
    )


def createOnPremDirectory(settings: Settings) -> OnPremDirectoryProtocol:
    if settings.onprem_csv:
        return CsvOnPremDirectory(settings.onprem_csv)
    return LdapOnPremDirectory(
        server_uri=settings.ldap_server or "",
        base_dn=settings.ldap_base_dn or "",
        bind_dn=settings.ldap_bind_dn,
        password=settings.ldap_password,
        timeout_seconds=settings.timeout_seconds,
    )


def runWithReport(
    ctx: typer.Context,
    commandName: str,
    requiresGraph: bool,
    requiresOnPrem: bool,
    runner,
) -> None:
    """
    Назначение:
        Унифицированная обвязка выполнения команд:
        - создаёт логгер + файл лога
        - создаёт report.json skeleton
        - валидирует обязательные входы (Graph/локальный каталог)
        - перенаправляет stdout/stderr в лог (tee)
        - гарантирует запись отчёта в finally
    """
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]
    sources = ctx.obj["sources"]

    startMonotonic = time.monotonic()

    logger, logFilePath = createCommandLogger(
        commandName=commandName,
        logDir=settings.log_dir,
        runId=runId,
        logLevel=settings.log_level,
    )

    report = createEmptyReport(runId=runId, command=commandName, configSources=sources)
    report.meta.graph_base_url = settings.graph_base_url if requiresGraph else None

    originalStdout = sys.stdout
    originalStderr = sys.stderr

    stdoutLoggerStream = StdStreamToLogger(logger, logging.INFO, runId, "stdout")
    stderrLoggerStream = StdStreamToLogger(logger, logging.ERROR, runId, "stderr")

    sys.stdout = TeeStream(originalStdout, stdoutLoggerStream)
    sys.stderr = TeeStream(originalStderr, stderrLoggerStream)

    exitCode: int | None = None

    try:
        logEvent(logger, logging.INFO, runId, "core", "Command started")
        printRunHeader(runId, commandName, settings, sources)

        if requiresGraph:
            try:
                requireGraph(settings)
            except typer.Exit:
                logEvent(logger, logging.ERROR, runId, "config", "Missing Graph settings")
                exitCode = 2
                return

        if requiresOnPrem:
            try:
                requireOnPrem(settings)
            except typer.Exit:
                logEvent(logger, logging.ERROR, runId, "config", "Missing on-prem directory settings")
                exitCode = 2
                return

        exitCode = runner(logger, report)

    finally:
        durationMs = getDurationMs(startMonotonic, time.monotonic())
        finalizeReport(
            report=report,
            durationMs=durationMs,
            logFile=logFilePath,
            auditDir=settings.audit_dir,
            reportDir=settings.report_dir,
        )
        reportPath = writeReportJson(report, settings.report_dir, f"report_{commandName}_{runId}")
        logEvent(logger, logging.INFO, runId, "report", f"Report written: {reportPath}")

        sys.stdout.flush()
        sys.stderr.flush()
        sys.stdout = originalStdout
        sys.stderr = originalStderr
        closeCommandLogger(logger)

        if exitCode is not None:
            raise typer.Exit(code=exitCode)


def runAnchorCommand(ctx: typer.Context, guid: str | None, consistencyGuid: str | None) -> None:
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        try:
            object_guid = uuid.UUID(guid) if guid else None
            consistency = parse_consistency_guid(consistencyGuid)
        except ValueError as exc:
            typer.echo(f"ERROR: {exc}", err=True)
            return 2
        identity = OnPremIdentity(object_guid=object_guid, consistency_guid=consistency)
        if not identity.consistency_guid and identity.object_guid is None:
            typer.echo("ERROR: specify --guid or --consistency-guid", err=True)
            return 2
        anchor = derive_anchor(identity)
        source = "consistencyGuid" if identity.consistency_guid else "objectGuid"
        typer.echo(f"anchor={anchor.text} source={source}")
        logEvent(logger, logging.INFO, runId, "anchor", f"anchor={anchor.text} source={source}")
        return 0

    runWithReport(ctx=ctx, commandName="anchor", requiresGraph=False, requiresOnPrem=False, runner=execute)


def runAnchorDecodeCommand(ctx: typer.Context, text: str) -> None:
    def execute(logger, report) -> int:
        try:
            anchor = anchor_from_text(text)
        except ValueError as exc:
            typer.echo(f"ERROR: {exc}", err=True)
            return 2
        decoded = guid_from_anchor(anchor)
        typer.echo(f"guid={decoded if decoded else '-'} bytes={len(anchor.raw)} hex={anchor.raw.hex()}")
        return 0

    runWithReport(ctx=ctx, commandName="anchor-decode", requiresGraph=False, requiresOnPrem=False, runner=execute)


def runCheckApiCommand(ctx: typer.Context, apiTransport=None) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        client = createGraphClient(settings, transport=apiTransport)
        try:
            start = time.monotonic()
            GraphCloudDirectory(client).ping()
            latency_ms = int((time.monotonic() - start) * 1000)
            logEvent(logger, logging.INFO, runId, "api", f"api ok base_url={settings.graph_base_url} latency_ms={latency_ms}")
            typer.echo(f"api ok latency_ms={latency_ms}")
            return 0
        except ApiError as exc:
            logEvent(logger, logging.ERROR, runId, "api", f"API check failed: {exc}")
            typer.echo("ERROR: API check failed (see logs/report)", err=True)
            return 2
        finally:
            client.close()

    runWithReport(ctx=ctx, commandName="check-api", requiresGraph=True, requiresOnPrem=False, runner=execute)


def runLinkCommand(ctx: typer.Context, apiTransport=None) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        report.meta.onprem_source = "csv" if settings.onprem_csv else "ldap"
        report.meta.settle_seconds = settings.settle_seconds
        try:
            conn = openAuditDb(getAuditDbPath(settings.audit_dir))
        except sqlite3.Error as exc:
            logEvent(logger, logging.ERROR, runId, "audit", f"Failed to open audit DB: {exc}")
            typer.echo("ERROR: failed to open audit DB (see logs/report)", err=True)
            return 2

        audit_engine = SqliteEngine(conn)
        client = createGraphClient(settings, transport=apiTransport)
        on_prem = createOnPremDirectory(settings)
        try:
            ensure_audit_schema(audit_engine)
            directory = GraphCloudDirectory(client)
            selection = ConsoleSelection(on_prem, directory, search_limit=settings.search_limit)
            audit = CompositeAuditSink(
                [
                    SqliteAuditRepository(audit_engine, run_id=runId),
                    ReportAuditSink(report),
                    LoggingAuditSink(logger, runId),
                ]
            )
            session = ReconciliationSession(
                selection=selection,
                directory=directory,
                audit=audit,
                engine=LinkageEngine(settle_seconds=settings.settle_seconds, logger=logger, run_id=runId),
                logger=logger,
                run_id=runId,
            )
            selection.is_processed = session.is_processed
            summary = session.run()
            typer.echo(
                f"link done attempts={summary.attempts} success={summary.success} "
                f"skipped={summary.skipped} errors={summary.errors}"
            )
            return 1 if summary.errors > 0 else 0
        except sqlite3.Error as exc:
            logEvent(logger, logging.ERROR, runId, "audit", f"Audit write failed: {exc}")
            typer.echo("ERROR: audit write failed (see logs/report)", err=True)
            return 2
        finally:
            client.close()
            if isinstance(on_prem, LdapOnPremDirectory):
                on_prem.close()
            audit_engine.close()

    runWithReport(ctx=ctx, commandName="link", requiresGraph=True, requiresOnPrem=True, runner=execute)


def runAuditListCommand(ctx: typer.Context, limit: int, cloudId: str | None = None) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        try:
            conn = openAuditDb(getAuditDbPath(settings.audit_dir))
        except sqlite3.Error as exc:
            logEvent(logger, logging.ERROR, runId, "audit", f"Failed to open audit DB: {exc}")
            typer.echo("ERROR: failed to open audit DB (see logs/report)", err=True)
            return 2
        engine = SqliteEngine(conn)
        try:
            ensure_audit_schema(engine)
            repository = SqliteAuditRepository(engine)
            records = repository.list_for_cloud_id(cloudId) if cloudId else repository.list_recent(limit)
        finally:
            engine.close()
        for record in records:
            typer.echo(
                f"{record.timestamp} {record.kind.value} source={record.source.login_name or '-'} "
                f"target={record.target.principal_name or '-'} anchor={record.anchor_text or '-'} "
                f"detail={record.detail}"
            )
        typer.echo(f"records={len(records)}")
        return 0

    runWithReport(ctx=ctx, commandName="audit-list", requiresGraph=False, requiresOnPrem=False, runner=execute)


@app.callback()
def main(
    ctx: typer.Context,
    config: str | None = typer.Option(None, "--config", help="Path to config.yml"),
    runId: str | None = typer.Option(None, "--run-id", help="Run identifier (UUID). If omitted, generated."),
    logLevel: str | None = typer.Option(None, "--log-level", help="Log level: ERROR|WARN|INFO|DEBUG"),
    logDir: str | None = typer.Option(None, "--log-dir", help="Directory for logs."),
    reportDir: str | None = typer.Option(None, "--report-dir", help="Directory for reports."),
    auditDir: str | None = typer.Option(None, "--audit-dir", help="Directory for the audit journal (SQLite)."),
    graphBaseUrl: str | None = typer.Option(None, "--graph-base-url", help="Microsoft Graph base URL"),
    graphToken: str | None = typer.Option(None, "--graph-token", help="Graph bearer token (avoid; use env/file)"),
    graphTokenFile: str | None = typer.Option(None, "--graph-token-file", help="Read Graph bearer token from file"),
    ldapServer: str | None = typer.Option(None, "--ldap-server", help="LDAP server URI, e.g. ldaps://dc01.corp.local"),
    ldapBindDn: str | None = typer.Option(None, "--ldap-bind-dn", help="LDAP bind DN or UPN"),
    ldapPassword: str | None = typer.Option(None, "--ldap-password", help="LDAP password (avoid; use env/file)"),
    ldapPasswordFile: str | None = typer.Option(None, "--ldap-password-file", help="Read LDAP password from file"),
    ldapBaseDn: str | None = typer.Option(None, "--ldap-base-dn", help="LDAP search base DN"),
    onpremCsv: str | None = typer.Option(None, "--onprem-csv", help="On-prem users CSV export instead of LDAP"),
    timeoutSeconds: float | None = typer.Option(None, "--timeout-seconds", help="Directory call timeout in seconds"),
    retries: int | None = typer.Option(None, "--retries", help="Retry attempts for Graph reads"),
    retryBackoffSeconds: float | None = typer.Option(None, "--retry-backoff-seconds", help="Base backoff for retries"),
    settleSeconds: float | None = typer.Option(None, "--settle-seconds", help="Pause before verifying the anchor write"),
    tlsSkipVerify: bool | None = typer.Option(None, "--tls-skip-verify", help="Disable TLS verification"),
    caFile: str | None = typer.Option(None, "--ca-file", help="CA file path"),
):
    """
    Назначение:
        Глобальная инициализация CLI:
        - генерирует/принимает run_id
        - загружает настройки (CLI > ENV > config > defaults)
        - создаёт каталоги log/report/audit
        - сохраняет всё в ctx.obj для подкоманд
    """
    if graphTokenFile and not graphToken:
        graphToken = readSecretFile(graphTokenFile, "graph-token-file")
    if ldapPasswordFile and not ldapPassword:
        ldapPassword = readSecretFile(ldapPasswordFile, "ldap-password-file")

    if not runId:
        runId = generate_run_id()

    cliOverrides = {
        "graph_base_url": graphBaseUrl,
        "graph_token": graphToken,
        "ldap_server": ldapServer,
        "ldap_bind_dn": ldapBindDn,
        "ldap_password": ldapPassword,
        "ldap_base_dn": ldapBaseDn,
        "onprem_csv": onpremCsv,
        "log_level": logLevel,
        "log_dir": logDir,
        "report_dir": reportDir,
        "audit_dir": auditDir,
        "timeout_seconds": timeoutSeconds,
        "retries": retries,
        "retry_backoff_seconds": retryBackoffSeconds,
        "settle_seconds": settleSeconds,
        "tls_skip_verify": tlsSkipVerify,
        "ca_file": caFile,
    }
    try:
        loaded = loadSettings(config_path=config, cli_overrides=cliOverrides)
        mapLogLevel(loaded.settings.log_level)
    except ValueError as exc:
        typer.echo(f"ERROR: invalid settings: {exc}", err=True)
        raise typer.Exit(code=2)

    ensureDir(loaded.settings.log_dir)
    ensureDir(loaded.settings.report_dir)
    ensureDir(loaded.settings.audit_dir)

    ctx.obj = {
        "runId": runId,
        "settings": loaded.settings,
        "sources": loaded.sources_used,
        "configPath": config,
    }


@app.command("anchor")
def anchor(
    ctx: typer.Context,
    guid: str | None = typer.Option(None, "--guid", help="objectGUID of the on-prem user"),
    consistencyGuid: str | None = typer.Option(
        None,
        "--consistency-guid",
        help="mS-DS-ConsistencyGuid (GUID string or base64); takes precedence over --guid",
    ),
):
    runAnchorCommand(ctx, guid, consistencyGuid)


@app.command("anchor-decode")
def anchorDecode(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Base64 immutable id to decode"),
):
    runAnchorDecodeCommand(ctx, text)


@app.command("check-api")
def checkApi(ctx: typer.Context):
    runCheckApiCommand(ctx)


@app.command("link")
def link(ctx: typer.Context):
    runLinkCommand(ctx)


@auditApp.command("list")
def auditList(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", help="Number of recent records to show"),
    cloudId: str | None = typer.Option(None, "--cloud-id", help="Show the full history of one cloud user"),
):
    runAuditListCommand(ctx, limit, cloudId)


app.add_typer(auditApp, name="audit")
