import uuid

import typer

from hardmatch.domain.models import CloudIdentity, OnPremIdentity, OutcomeKind
from hardmatch.errors import AppError
from hardmatch.infra.console.selection import ConsoleSelection
from hardmatch.infra.sources.csv_directory import CsvOnPremDirectory

JDOE = OnPremIdentity(object_guid=uuid.UUID(int=1), login_name="jdoe", principal_name="jdoe@corp.local", display_name="John Doe")
ALEE = OnPremIdentity(object_guid=uuid.UUID(int=2), login_name="alee", principal_name="alee@corp.local", display_name="Ann Lee")
CLOUD = CloudIdentity(cloud_id="c-1", principal_name="jdoe@contoso.com", display_name="John Doe")


class FakeOnPrem:
    def __init__(self, items, error: Exception | None = None):
        self.items = items
        self.error = error
        self.terms: list[str] = []

    def search(self, term, limit):
        self.terms.append(term)
        if self.error is not None:
            error, self.error = self.error, None
            raise error
        return [item for item in self.items if term.lower() in item.login_name][:limit]


class FakeCloud:
    def __init__(self, items, error: Exception | None = None):
        self.items = items
        self.error = error
        self.terms: list[str] = []

    def search(self, term, limit):
        self.terms.append(term)
        if self.error is not None:
            raise self.error
        return list(self.items)[:limit]


class Console:
    def __init__(self, answers, confirms=()):
        self.answers = list(answers)
        self.confirms = list(confirms)
        self.prompts: list[tuple[str, str]] = []
        self.lines: list[str] = []

    def prompt(self, text, default="", show_default=True):
        self.prompts.append((text, default))
        answer = self.answers.pop(0)
        if isinstance(answer, BaseException):
            raise answer
        return answer

    def confirm(self, text, default=True):
        answer = self.confirms.pop(0)
        if isinstance(answer, BaseException):
            raise answer
        return answer

    def echo(self, message="", err=False):
        self.lines.append(message)


def _selection(console: Console, on_prem=None, cloud=None, is_processed=None) -> ConsoleSelection:
    return ConsoleSelection(
        on_prem=on_prem or FakeOnPrem([JDOE, ALEE]),
        cloud=cloud or FakeCloud([CLOUD]),
        is_processed=is_processed,
        echo=console.echo,
        prompt=console.prompt,
        confirm=console.confirm,
    )


def test_select_on_prem_picks_numbered_candidate():
    console = Console(["e", "2"])

    picked = _selection(console).select_on_prem()

    assert picked == ALEE
    assert any("[2] Ann Lee" in line for line in console.lines)


def test_select_on_prem_empty_input_cancels():
    assert _selection(Console([""])).select_on_prem() is None
    assert _selection(Console(["q"])).select_on_prem() is None


def test_select_on_prem_abort_cancels():
    assert _selection(Console([typer.Abort()])).select_on_prem() is None


def test_select_on_prem_repeats_after_invalid_number_and_no_match():
    console = Console(["zzz", "jdoe", "7", "1"])

    assert _selection(console).select_on_prem() == JDOE
    assert any("No on-prem users match" in line for line in console.lines)
    assert any("between 1 and 1" in line for line in console.lines)


def test_select_on_prem_search_error_is_reported_and_prompt_repeats():
    on_prem = FakeOnPrem([JDOE], error=AppError(category="ldap", code="DIRECTORY_ERROR", message="LDAP search failed"))
    console = Console(["jdoe", "jdoe", "1"])

    assert _selection(console, on_prem=on_prem).select_on_prem() == JDOE
    assert any("LDAP search failed" in line for line in console.lines)
    assert on_prem.terms == ["jdoe", "jdoe"]


def test_processed_identities_are_marked():
    console = Console(["j", "", ""])
    selection = _selection(
        console,
        on_prem=FakeOnPrem([JDOE]),
        is_processed=lambda identity: OutcomeKind.SUCCESS if identity.login_name == "jdoe" else None,
    )

    assert selection.select_on_prem() is None
    assert any("(processed: Success)" in line for line in console.lines)


def test_select_cloud_uses_hint_as_default():
    cloud = FakeCloud([CLOUD])
    console = Console(["jdoe@corp.local", "1"])

    picked = _selection(console, cloud=cloud).select_cloud("jdoe@corp.local")

    assert picked == CLOUD
    assert console.prompts[0] == ("Cloud user search (empty or q to skip)", "jdoe@corp.local")
    assert cloud.terms == ["jdoe@corp.local"]


def test_select_cloud_returns_none_on_skip_or_no_results_or_error():
    assert _selection(Console(["q"])).select_cloud("x") is None
    assert _selection(Console(["x"]), cloud=FakeCloud([])).select_cloud("x") is None

    failing = FakeCloud([], error=AppError(category="api", code="FORBIDDEN", message="HTTP 403"))
    console = Console(["x"])
    assert _selection(console, cloud=failing).select_cloud("x") is None
    assert any("HTTP 403" in line for line in console.lines)


def test_confirm_continue():
    assert _selection(Console([], confirms=[True])).confirm_continue() is True
    assert _selection(Console([], confirms=[False])).confirm_continue() is False
    assert _selection(Console([], confirms=[typer.Abort()])).confirm_continue() is False


def test_unreadable_csv_export_is_reported_and_prompt_repeats(tmp_path):
    path = tmp_path / "broken.csv"
    path.write_bytes("ObjectGUID;SamAccountName\n00112233-4455-6677-8899-aabbccddeeff;j\xf6k\n".encode("latin-1"))
    console = Console(["j", ""])

    picked = _selection(console, on_prem=CsvOnPremDirectory(str(path))).select_on_prem()

    assert picked is None
    assert any("on-prem search failed" in line for line in console.lines)
