from hardmatch.infra.audit.sinks import CompositeAuditSink, LoggingAuditSink, ReportAuditSink
from hardmatch.infra.audit.sqlite_audit_repository import SqliteAuditRepository

__all__ = [
    "CompositeAuditSink",
    "LoggingAuditSink",
    "ReportAuditSink",
    "SqliteAuditRepository",
]
