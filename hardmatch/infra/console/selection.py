from __future__ import annotations

from typing import Callable, Sequence, TypeVar

import typer

from hardmatch.domain.models import CloudIdentity, OnPremIdentity, OutcomeKind
from hardmatch.domain.ports.directory import CloudSearchProtocol, OnPremDirectoryProtocol
from hardmatch.domain.ports.selection import SelectionProtocol
from hardmatch.errors import AppError
from hardmatch.infra.sources.csv_utils import CsvFormatError

T = TypeVar("T")

CANCEL_INPUTS = ("q", "quit", "exit")


class ConsoleSelection(SelectionProtocol):
    """
    Назначение/ответственность:
        Интерактивный выбор пары учётных записей в консоли (typer.prompt).
    Контракт:
        - Пустой ввод или 'q' при поиске AD: отмена сессии (None).
        - Пустой ввод или 'q' при выборе облачного пользователя: None для этой попытки.
        - Ctrl+C/EOF трактуются как отмена.
        - Ошибки поиска выводятся оператору и не прерывают сессию.
    """

    def __init__(
        self,
        on_prem: OnPremDirectoryProtocol,
        cloud: CloudSearchProtocol,
        search_limit: int = 20,
        is_processed: Callable[[OnPremIdentity], OutcomeKind | None] | None = None,
        echo: Callable[..., None] = typer.echo,
        prompt: Callable[..., str] = typer.prompt,
        confirm: Callable[..., bool] = typer.confirm,
    ):
        self.on_prem = on_prem
        self.cloud = cloud
        self.search_limit = search_limit
        self.is_processed = is_processed
        self.echo = echo
        self.prompt = prompt
        self.confirm = confirm

    def select_on_prem(self) -> OnPremIdentity | None:
        while True:
            term = self._ask("On-prem user search (empty or q to finish)", default="")
            if term is None:
                return None
            try:
                candidates = self.on_prem.search(term, self.search_limit)
            except (AppError, CsvFormatError, OSError) as exc:
                self.echo(f"ERROR: on-prem search failed: {exc}", err=True)
                continue
            if not candidates:
                self.echo(f"No on-prem users match '{term}'")
                continue
            picked = self._pick(candidates, self._describe_on_prem)
            if picked is not None:
                return picked

    def select_cloud(self, hint: str) -> CloudIdentity | None:
        term = self._ask("Cloud user search (empty or q to skip)", default=hint)
        if term is None:
            return None
        try:
            candidates = self.cloud.search(term, self.search_limit)
        except AppError as exc:
            self.echo(f"ERROR: cloud search failed: {exc}", err=True)
            return None
        if not candidates:
            self.echo(f"No cloud users match '{term}'")
            return None
        return self._pick(candidates, _describe_cloud)

    def confirm_continue(self) -> bool:
        try:
            return bool(self.confirm("Link another identity?", default=True))
        except typer.Abort:
            return False

    def _ask(self, text: str, default: str) -> str | None:
        try:
            value = self.prompt(text, default=default, show_default=bool(default))
        except typer.Abort:
            return None
        value = (value or "").strip()
        if not value or value.lower() in CANCEL_INPUTS:
            return None
        return value

    def _pick(self, candidates: Sequence[T], describe: Callable[[T], str]) -> T | None:
        for idx, item in enumerate(candidates, start=1):
            self.echo(f"  [{idx}] {describe(item)}")
        while True:
            answer = self._ask("Select number (empty or q to go back)", default="")
            if answer is None:
                return None
            if answer.isdigit() and 1 <= int(answer) <= len(candidates):
                return candidates[int(answer) - 1]
            self.echo(f"Enter a number between 1 and {len(candidates)}")

    def _describe_on_prem(self, identity: OnPremIdentity) -> str:
        text = (
            f"{identity.display_name or '-'} login={identity.login_name or '-'} "
            f"upn={identity.principal_name or '-'}"
        )
        if identity.consistency_guid:
            text += " consistencyGuid=set"
        if self.is_processed is not None:
            kind = self.is_processed(identity)
            if kind is not None:
                text += f" (processed: {kind.value})"
        return text


def _describe_cloud(identity: CloudIdentity) -> str:
    text = (
        f"{identity.display_name or '-'} upn={identity.principal_name or '-'} "
        f"mail={identity.mail or '-'} id={identity.cloud_id}"
    )
    if identity.sync_enabled:
        text += " [synced]"
    if identity.immutable_id:
        text += f" immutableId={identity.immutable_id}"
    return text
