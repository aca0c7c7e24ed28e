from __future__ import annotations

import base64
import binascii
import uuid

from hardmatch.domain.exceptions import AnchorDerivationError
from hardmatch.domain.models import Anchor, OnPremIdentity

GUID_SIZE = 16


def derive_anchor(identity: OnPremIdentity) -> Anchor:
    """
    Назначение:
        Вычисляет якорь (значение для onPremisesImmutableId) по учётной записи AD.

    Алгоритм:
        1) Непустой mS-DS-ConsistencyGuid берётся как есть.
        2) Иначе objectGUID в каноническом little-endian виде (16 байт,
           так же, как AD хранит objectGUID).
        Текстовая форма: стандартный base64.
        Порядок приоритета менять нельзя: связи, уже построенные по
        ConsistencyGuid, разъедутся.

    Ошибки/исключения:
        AnchorDerivationError, если нет ни одного источника.
    """
    if identity.consistency_guid:
        raw = bytes(identity.consistency_guid)
    elif identity.object_guid is not None:
        raw = identity.object_guid.bytes_le
    else:
        raise AnchorDerivationError(login_name=identity.login_name or None)
    return Anchor(raw=raw, text=encode_anchor(raw))


def encode_anchor(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def anchor_from_text(text: str) -> Anchor:
    """
    Назначение:
        Разбирает уже записанный immutableId обратно в Anchor.

    Ошибки/исключения:
        ValueError, если text не является корректным base64.
    """
    value = (text or "").strip()
    if not value:
        raise ValueError("anchor text is empty")
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"anchor text is not valid base64: {value}") from exc
    return Anchor(raw=raw, text=encode_anchor(raw))


def guid_from_anchor(anchor: Anchor) -> uuid.UUID | None:
    """GUID, закодированный в якоре, или None, если длина не 16 байт."""
    if len(anchor.raw) != GUID_SIZE:
        return None
    return uuid.UUID(bytes_le=anchor.raw)


def parse_consistency_guid(value: str | bytes | None) -> bytes | None:
    """
    Назначение:
        Приводит значение mS-DS-ConsistencyGuid из внешнего источника к байтам.

    Алгоритм:
        - bytes возвращаются как есть (пустые -> None).
        - Строка в виде GUID ("xxxxxxxx-xxxx-...") -> bytes_le.
        - Иначе строка считается base64.

    Ошибки/исключения:
        ValueError для строк, которые не являются ни GUID, ни base64.
    """
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value) or None
    text = value.strip()
    if not text:
        return None
    try:
        return uuid.UUID(text).bytes_le
    except ValueError:
        pass
    return anchor_from_text(text).raw
