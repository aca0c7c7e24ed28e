from __future__ import annotations

import logging
import time
from typing import Callable

from hardmatch.common.time import getNowIso
from hardmatch.domain.error_codes import ErrorCode
from hardmatch.domain.linkage.anchor import derive_anchor
from hardmatch.domain.linkage.classifier import DETAIL_ALREADY_LINKED, classify
from hardmatch.domain.linkage.stage_result import StageResult
from hardmatch.domain.models import (
    Anchor,
    CloudIdentity,
    LinkStage,
    OnPremIdentity,
    OutcomeRecord,
    SourceDescriptor,
    TargetDescriptor,
)
from hardmatch.infra.logging.setup import logEvent

FetchCloud = Callable[[], CloudIdentity]
ApplyAnchor = Callable[[str, str], None]

DEFAULT_SETTLE_SECONDS = 2.0


class LinkageEngine:
    """
    Назначение/ответственность:
        Выполняет одну попытку hard match: якорь -> проверка -> запись -> сверка.
    Инварианты/гарантии:
        - Стадии строго последовательны: CheckAlreadyLinked, ApplyAnchor, Verify.
        - Не более одной записи в облачный каталог за попытку, без повторов.
        - Ни одно исключение коллабораторов не выходит наружу из link().
    Ограничения:
        Между проверкой и записью нет блокировки: внешняя синхронизация или
        другой оператор могут изменить пользователя в этот промежуток.
    """

    def __init__(
        self,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], str] = getNowIso,
        logger: logging.Logger | None = None,
        run_id: str = "",
    ):
        self.settle_seconds = settle_seconds
        self.sleep = sleep
        self.clock = clock
        self.logger = logger
        self.run_id = run_id

    def link(
        self,
        on_prem: OnPremIdentity,
        cloud: CloudIdentity,
        fetch_current: FetchCloud,
        apply: ApplyAnchor,
        refetch: FetchCloud,
    ) -> OutcomeRecord:
        """
        Контракт (вход/выход):
            Вход: выбранные учётные записи и функции доступа к облачному каталогу.
            - fetch_current(): свежий снимок пользователя перед записью.
            - apply(cloud_id, anchor_text): запись onPremisesImmutableId.
            - refetch(): свежий снимок после записи.
            Выход: OutcomeRecord с kind Success|Skipped|Error.
        """
        anchor_result = self._compute_anchor(on_prem)
        if not anchor_result.ok:
            return self._finish(on_prem, cloud, None, anchor_result)
        anchor: Anchor = anchor_result.value
        self._log(logging.DEBUG, f"anchor computed login={on_prem.login_name} anchor={anchor.text}")

        check_result = self._check_already_linked(fetch_current)
        if not check_result.ok:
            return self._finish(on_prem, cloud, anchor, check_result)

        apply_result = self._apply_anchor(apply, cloud.cloud_id, anchor)
        if not apply_result.ok:
            return self._finish(on_prem, cloud, anchor, apply_result)

        verify_result = self._verify(refetch, anchor)
        return self._finish(on_prem, cloud, anchor, verify_result)

    def _compute_anchor(self, on_prem: OnPremIdentity) -> StageResult:
        try:
            return StageResult.success(LinkStage.COMPUTE_ANCHOR, derive_anchor(on_prem))
        except Exception as exc:
            return StageResult.from_exception(LinkStage.COMPUTE_ANCHOR, exc)

    def _check_already_linked(self, fetch_current: FetchCloud) -> StageResult:
        try:
            current = fetch_current()
        except Exception as exc:
            return StageResult.from_exception(LinkStage.CHECK_ALREADY_LINKED, exc)
        if current.sync_enabled:
            return StageResult.skip(LinkStage.CHECK_ALREADY_LINKED, DETAIL_ALREADY_LINKED)
        if current.immutable_id:
            self._log(
                logging.WARNING,
                f"cloud identity {current.cloud_id} has immutable id {current.immutable_id}, it will be overwritten",
            )
        return StageResult.success(LinkStage.CHECK_ALREADY_LINKED, current)

    def _apply_anchor(self, apply: ApplyAnchor, cloud_id: str, anchor: Anchor) -> StageResult:
        try:
            apply(cloud_id, anchor.text)
        except Exception as exc:
            return StageResult.from_exception(LinkStage.APPLY_ANCHOR, exc)
        self._log(logging.INFO, f"anchor written cloud_id={cloud_id} anchor={anchor.text}")
        return StageResult.success(LinkStage.APPLY_ANCHOR)

    def _verify(self, refetch: FetchCloud, anchor: Anchor) -> StageResult:
        if self.settle_seconds > 0:
            self.sleep(self.settle_seconds)
        try:
            fresh = refetch()
        except Exception as exc:
            return StageResult.from_exception(LinkStage.VERIFY, exc)
        if fresh.immutable_id != anchor.text:
            return StageResult.fault(
                LinkStage.VERIFY,
                f"expected {anchor.text}, got {fresh.immutable_id or '<empty>'}",
                ErrorCode.VERIFICATION_MISMATCH,
            )
        return StageResult.success(LinkStage.VERIFY, fresh)

    def _finish(
        self,
        on_prem: OnPremIdentity,
        cloud: CloudIdentity,
        anchor: Anchor | None,
        result: StageResult,
    ) -> OutcomeRecord:
        classification = classify(result)
        record = OutcomeRecord(
            timestamp=self.clock(),
            source=SourceDescriptor.of(on_prem),
            target=TargetDescriptor.of(cloud),
            anchor_text=anchor.text if anchor else None,
            kind=classification.kind,
            detail=classification.detail,
            stage=result.stage,
            error_code=classification.error_code,
        )
        level = logging.ERROR if classification.error_code else logging.INFO
        self._log(
            level,
            f"link {record.kind.value} login={on_prem.login_name} cloud_id={cloud.cloud_id} "
            f"stage={result.stage.value} detail={record.detail}",
        )
        return record

    def _log(self, level: int, message: str) -> None:
        if self.logger is None:
            return
        logEvent(self.logger, level, self.run_id, "link", message)
