import pytest

from hardmatch.domain.error_codes import ErrorCode
from hardmatch.domain.linkage.classifier import classify
from hardmatch.domain.linkage.stage_result import StageResult
from hardmatch.domain.models import LinkStage, OutcomeKind
from hardmatch.infra.http.graph_client import ApiError


def test_verify_ok_is_success():
    result = classify(StageResult.success(LinkStage.VERIFY))

    assert result.kind == OutcomeKind.SUCCESS
    assert result.detail == "anchor applied and verified"
    assert result.error_code is None


def test_skip_is_skipped_with_message():
    result = classify(StageResult.skip(LinkStage.CHECK_ALREADY_LINKED, "already under directory-sync control"))

    assert result.kind == OutcomeKind.SKIPPED
    assert "already" in result.detail


def test_fault_keeps_original_message_verbatim():
    exc = ApiError("HTTP 403: Insufficient privileges to complete the operation.", status_code=403)
    result = classify(StageResult.from_exception(LinkStage.APPLY_ANCHOR, exc))

    assert result.kind == OutcomeKind.ERROR
    assert "Insufficient privileges to complete the operation." in result.detail
    assert result.error_code == ErrorCode.FORBIDDEN.value


def test_verification_mismatch_detail():
    result = classify(
        StageResult.fault(LinkStage.VERIFY, "expected AAA=, got <empty>", ErrorCode.VERIFICATION_MISMATCH)
    )

    assert result.kind == OutcomeKind.ERROR
    assert result.detail.startswith("verification mismatch")
    assert "AAA=" in result.detail


def test_unknown_exception_maps_to_unexpected_error():
    result = classify(StageResult.from_exception(LinkStage.CHECK_ALREADY_LINKED, RuntimeError("boom")))

    assert result.error_code == ErrorCode.UNEXPECTED_ERROR.value
    assert "boom" in result.detail


def test_non_terminal_state_is_rejected():
    with pytest.raises(ValueError):
        classify(StageResult.success(LinkStage.APPLY_ANCHOR))
