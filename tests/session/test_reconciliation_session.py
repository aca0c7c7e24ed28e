import uuid

import pytest

from hardmatch.domain.linkage.engine import LinkageEngine
from hardmatch.domain.models import CloudIdentity, OnPremIdentity, OutcomeKind
from hardmatch.usecases.reconciliation_session import ReconciliationSession


class ScriptedSelection:
    def __init__(self, on_prem, cloud, answers):
        self.on_prem = list(on_prem)
        self.cloud = list(cloud)
        self.answers = list(answers)
        self.cloud_hints: list[str] = []

    def select_on_prem(self):
        return self.on_prem.pop(0) if self.on_prem else None

    def select_cloud(self, hint):
        self.cloud_hints.append(hint)
        return self.cloud.pop(0) if self.cloud else None

    def confirm_continue(self):
        return self.answers.pop(0) if self.answers else False


class InMemoryDirectory:
    def __init__(self, users: dict[str, CloudIdentity]):
        self.users = dict(users)
        self.writes: list[tuple[str, str]] = []

    def fetch_cloud(self, cloud_id):
        return self.users[cloud_id]

    def write_anchor(self, cloud_id, anchor_text):
        self.writes.append((cloud_id, anchor_text))
        user = self.users[cloud_id]
        self.users[cloud_id] = CloudIdentity(
            cloud_id=user.cloud_id,
            principal_name=user.principal_name,
            immutable_id=anchor_text,
            sync_enabled=user.sync_enabled,
        )


class RecordingAudit:
    def __init__(self):
        self.records = []

    def record(self, record):
        self.records.append(record)


class FailingAudit:
    def record(self, record):
        raise OSError("disk full")


def _on_prem(login: str, guid: str) -> OnPremIdentity:
    return OnPremIdentity(
        object_guid=uuid.UUID(guid),
        display_name=login.title(),
        login_name=login,
        principal_name=f"{login}@corp.local",
    )


def _session(selection, directory, audit):
    return ReconciliationSession(
        selection=selection,
        directory=directory,
        audit=audit,
        engine=LinkageEngine(settle_seconds=0),
        clock=lambda: "2026-01-01T00:00:00+00:00",
    )


def test_session_links_pairs_until_operator_stops():
    alice = _on_prem("alice", "11111111-1111-1111-1111-111111111111")
    bob = _on_prem("bob", "22222222-2222-2222-2222-222222222222")
    directory = InMemoryDirectory(
        {
            "c-a": CloudIdentity(cloud_id="c-a", principal_name="alice@contoso.com"),
            "c-b": CloudIdentity(cloud_id="c-b", principal_name="bob@contoso.com", sync_enabled=True),
        }
    )
    selection = ScriptedSelection(
        on_prem=[alice, bob],
        cloud=[directory.users["c-a"], directory.users["c-b"]],
        answers=[True, False],
    )
    audit = RecordingAudit()
    session = _session(selection, directory, audit)

    summary = session.run()

    assert [r.kind for r in audit.records] == [OutcomeKind.SUCCESS, OutcomeKind.SKIPPED]
    assert summary.attempts == 2
    assert summary.success == 1
    assert summary.skipped == 1
    assert summary.cancelled is False
    assert len(directory.writes) == 1
    assert selection.cloud_hints == ["alice@corp.local", "bob@corp.local"]
    assert session.is_processed(alice) == OutcomeKind.SUCCESS
    assert session.is_processed(bob) == OutcomeKind.SKIPPED
    assert session.running is False


def test_empty_on_prem_selection_records_info_and_ends():
    selection = ScriptedSelection(on_prem=[], cloud=[], answers=[True])
    audit = RecordingAudit()

    summary = _session(selection, InMemoryDirectory({}), audit).run()

    assert summary.cancelled is True
    assert summary.attempts == 0
    assert len(audit.records) == 1
    assert audit.records[0].kind == OutcomeKind.INFO
    assert "cancel" in audit.records[0].detail


def test_missing_cloud_selection_is_retried_once_then_skipped():
    alice = _on_prem("alice", "11111111-1111-1111-1111-111111111111")
    selection = ScriptedSelection(on_prem=[alice], cloud=[], answers=[False])
    audit = RecordingAudit()

    summary = _session(selection, InMemoryDirectory({}), audit).run()

    assert selection.cloud_hints == ["alice@corp.local", "alice@corp.local"]
    assert [r.kind for r in audit.records] == [OutcomeKind.SKIPPED]
    assert audit.records[0].source.login_name == "alice"
    assert summary.skipped == 1


def test_cloud_retry_succeeds_on_second_selection():
    alice = _on_prem("alice", "11111111-1111-1111-1111-111111111111")
    directory = InMemoryDirectory({"c-a": CloudIdentity(cloud_id="c-a", principal_name="alice@contoso.com")})

    class SecondTimeLucky(ScriptedSelection):
        def select_cloud(self, hint):
            self.cloud_hints.append(hint)
            if len(self.cloud_hints) == 1:
                return None
            return directory.users["c-a"]

    selection = SecondTimeLucky(on_prem=[alice], cloud=[], answers=[False])
    audit = RecordingAudit()

    _session(selection, directory, audit).run()

    assert [r.kind for r in audit.records] == [OutcomeKind.SUCCESS]
    assert directory.writes and directory.writes[0][0] == "c-a"


def test_error_outcome_does_not_stop_session():
    alice = _on_prem("alice", "11111111-1111-1111-1111-111111111111")
    bob = _on_prem("bob", "22222222-2222-2222-2222-222222222222")
    directory = InMemoryDirectory({"c-b": CloudIdentity(cloud_id="c-b", principal_name="bob@contoso.com")})
    ghost = CloudIdentity(cloud_id="c-missing", principal_name="ghost@contoso.com")
    selection = ScriptedSelection(
        on_prem=[alice, bob, None],
        cloud=[ghost, directory.users["c-b"]],
        answers=[True, True],
    )
    audit = RecordingAudit()

    summary = _session(selection, directory, audit).run()

    assert [r.kind for r in audit.records] == [OutcomeKind.ERROR, OutcomeKind.SUCCESS, OutcomeKind.INFO]
    assert "c-missing" in audit.records[0].detail
    assert summary.errors == 1
    assert summary.success == 1
    assert summary.cancelled is True


def test_audit_failure_propagates():
    alice = _on_prem("alice", "11111111-1111-1111-1111-111111111111")
    directory = InMemoryDirectory({"c-a": CloudIdentity(cloud_id="c-a")})
    selection = ScriptedSelection(on_prem=[alice], cloud=[directory.users["c-a"]], answers=[True])
    session = _session(selection, directory, FailingAudit())

    with pytest.raises(OSError):
        session.run()
    assert session.running is False


class CrashingCloudSelection(ScriptedSelection):
    def select_cloud(self, hint):
        self.cloud_hints.append(hint)
        raise RuntimeError("cloud picker crashed")


class CrashingOnPremSelection(ScriptedSelection):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.crashes = 1

    def select_on_prem(self):
        if self.crashes:
            self.crashes -= 1
            raise OSError("export unreadable")
        return super().select_on_prem()


def test_cloud_selection_fault_becomes_error_and_session_continues():
    alice = _on_prem("alice", "11111111-1111-1111-1111-111111111111")
    directory = InMemoryDirectory({"c-a": CloudIdentity(cloud_id="c-a")})
    selection = CrashingCloudSelection(on_prem=[alice, None], cloud=[], answers=[True])
    audit = RecordingAudit()
    session = _session(selection, directory, audit)

    summary = session.run()

    assert [r.kind for r in audit.records] == [OutcomeKind.ERROR, OutcomeKind.INFO]
    assert audit.records[0].detail == "selection failed: cloud picker crashed"
    assert audit.records[0].error_code == "UNEXPECTED_ERROR"
    assert audit.records[0].source.login_name == "alice"
    assert summary.errors == 1
    assert directory.writes == []
    assert session.is_processed(alice) == OutcomeKind.ERROR


def test_on_prem_selection_fault_becomes_error_and_session_continues():
    alice = _on_prem("alice", "11111111-1111-1111-1111-111111111111")
    directory = InMemoryDirectory({"c-a": CloudIdentity(cloud_id="c-a")})
    selection = CrashingOnPremSelection(on_prem=[alice], cloud=[directory.users["c-a"]], answers=[True, False])
    audit = RecordingAudit()

    summary = _session(selection, directory, audit).run()

    assert [r.kind for r in audit.records] == [OutcomeKind.ERROR, OutcomeKind.SUCCESS]
    assert "export unreadable" in audit.records[0].detail
    assert summary.attempts == 2
    assert summary.cancelled is False


def test_failing_continue_prompt_ends_session_quietly():
    alice = _on_prem("alice", "11111111-1111-1111-1111-111111111111")
    directory = InMemoryDirectory({"c-a": CloudIdentity(cloud_id="c-a")})

    class BrokenConfirm(ScriptedSelection):
        def confirm_continue(self):
            raise EOFError()

    selection = BrokenConfirm(on_prem=[alice], cloud=[directory.users["c-a"]], answers=[])
    audit = RecordingAudit()

    summary = _session(selection, directory, audit).run()

    assert [r.kind for r in audit.records] == [OutcomeKind.SUCCESS]
    assert summary.success == 1
