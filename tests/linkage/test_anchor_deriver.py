import base64
import uuid

import pytest

from hardmatch.domain.exceptions import AnchorDerivationError
from hardmatch.domain.linkage.anchor import (
    anchor_from_text,
    derive_anchor,
    guid_from_anchor,
    parse_consistency_guid,
)
from hardmatch.domain.models import OnPremIdentity


def test_consistency_guid_is_used_verbatim():
    consistency = bytes(range(16))
    identity = OnPremIdentity(
        object_guid=uuid.UUID("11111111-1111-1111-1111-111111111111"),
        consistency_guid=consistency,
    )

    first = derive_anchor(identity)
    second = derive_anchor(identity)

    assert first.raw == consistency
    assert first.text == base64.b64encode(consistency).decode("ascii")
    assert first == second


def test_object_guid_fallback_uses_little_endian_layout():
    guid = uuid.UUID("00112233-4455-6677-8899-aabbccddeeff")
    identity = OnPremIdentity(object_guid=guid, consistency_guid=None)

    anchor = derive_anchor(identity)

    assert anchor.raw == bytes.fromhex("33221100554477668899aabbccddeeff")
    assert len(anchor.raw) == 16
    assert anchor.text == base64.b64encode(guid.bytes_le).decode("ascii")


def test_empty_consistency_guid_falls_back_to_object_guid():
    guid = uuid.UUID("11111111-1111-1111-1111-111111111111")
    identity = OnPremIdentity(object_guid=guid, consistency_guid=b"")

    anchor = derive_anchor(identity)

    assert anchor.text == "EREREREREREREREREREREQ=="
    assert [derive_anchor(identity).text for _ in range(3)] == [anchor.text] * 3


def test_identity_without_sources_raises():
    identity = OnPremIdentity(object_guid=None, consistency_guid=None, login_name="jdoe")

    with pytest.raises(AnchorDerivationError) as exc_info:
        derive_anchor(identity)

    assert "jdoe" in str(exc_info.value)
    assert exc_info.value.code.value == "ANCHOR_DERIVATION_FAILED"


def test_anchor_text_decodes_back_to_guid():
    guid = uuid.UUID("6f9619ff-8b86-d011-b42d-00c04fc964ff")
    anchor = derive_anchor(OnPremIdentity(object_guid=guid))

    decoded = anchor_from_text(anchor.text)

    assert decoded == anchor
    assert guid_from_anchor(decoded) == guid


def test_anchor_from_text_rejects_garbage():
    with pytest.raises(ValueError):
        anchor_from_text("not base64!")
    with pytest.raises(ValueError):
        anchor_from_text("  ")


def test_parse_consistency_guid_accepts_guid_string_and_base64():
    guid = uuid.UUID("00112233-4455-6677-8899-aabbccddeeff")
    as_base64 = base64.b64encode(guid.bytes_le).decode("ascii")

    assert parse_consistency_guid(str(guid)) == guid.bytes_le
    assert parse_consistency_guid(as_base64) == guid.bytes_le
    assert parse_consistency_guid(b"\x01\x02") == b"\x01\x02"
    assert parse_consistency_guid("") is None
    assert parse_consistency_guid(None) is None
