from __future__ import annotations

from dataclasses import dataclass

from hardmatch.domain.error_codes import ErrorCode


@dataclass
class AnchorDerivationError(Exception):
    """
    Назначение:
        У учётной записи нет ни mS-DS-ConsistencyGuid, ни objectGUID,
        якорь вычислить нельзя.
    Инварианты/гарантии:
        - code установлен в ErrorCode.ANCHOR_DERIVATION_FAILED.
    """

    login_name: str | None = None
    reason: str = "identity has neither consistency guid nor object guid"

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.ANCHOR_DERIVATION_FAILED

    def __str__(self) -> str:
        return f"{self.reason} (login_name={self.login_name})"


__all__ = ["AnchorDerivationError"]
