from __future__ import annotations

import uuid
from typing import Any, Callable

import ldap3
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from hardmatch.domain.error_codes import ErrorCode
from hardmatch.domain.models import OnPremIdentity
from hardmatch.domain.ports.directory import OnPremDirectoryProtocol
from hardmatch.errors import AppError

USER_ATTRIBUTES = [
    "objectGUID",
    "mS-DS-ConsistencyGuid",
    "displayName",
    "sAMAccountName",
    "userPrincipalName",
    "distinguishedName",
]


class DirectoryError(AppError):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            category="ldap",
            code=ErrorCode.DIRECTORY_ERROR.value,
            message=message,
            retryable=False,
            details=details or {},
        )


def _default_connection(server_uri: str, bind_dn: str | None, password: str | None, timeout: float) -> ldap3.Connection:
    server = ldap3.Server(server_uri, get_info=ldap3.NONE, connect_timeout=timeout)
    return ldap3.Connection(
        server,
        user=bind_dn,
        password=password,
        auto_bind=True,
        receive_timeout=timeout,
        read_only=True,
    )


class LdapOnPremDirectory(OnPremDirectoryProtocol):
    """
    Назначение/ответственность:
        Поиск учётных записей AD по LDAP (только чтение).
    Взаимодействия:
        Соединение открывается лениво и переиспользуется до close().
    Ограничения:
        Поиск по префиксу sAMAccountName, userPrincipalName, displayName.
    """

    def __init__(
        self,
        server_uri: str,
        base_dn: str,
        bind_dn: str | None = None,
        password: str | None = None,
        timeout_seconds: float = 20.0,
        connection_factory: Callable[..., Any] = _default_connection,
    ):
        self.server_uri = server_uri
        self.base_dn = base_dn
        self.bind_dn = bind_dn
        self.password = password
        self.timeout_seconds = timeout_seconds
        self.connection_factory = connection_factory
        self._conn = None

    def _connection(self):
        if self._conn is None:
            try:
                self._conn = self.connection_factory(self.server_uri, self.bind_dn, self.password, self.timeout_seconds)
            except LDAPException as exc:
                raise DirectoryError(f"LDAP bind failed: {exc}", details={"server": self.server_uri}) from exc
        return self._conn

    def search(self, term: str, limit: int) -> list[OnPremIdentity]:
        conn = self._connection()
        try:
            conn.search(
                search_base=self.base_dn,
                search_filter=build_user_filter(term),
                search_scope=ldap3.SUBTREE,
                attributes=USER_ATTRIBUTES,
                size_limit=limit,
            )
        except LDAPException as exc:
            raise DirectoryError(f"LDAP search failed: {exc}", details={"base_dn": self.base_dn}) from exc

        result: list[OnPremIdentity] = []
        for entry in conn.response or []:
            if entry.get("type") != "searchResEntry":
                continue
            result.append(entry_to_identity(entry.get("attributes") or {}, entry.get("raw_attributes") or {}))
            if len(result) >= limit:
                break
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.unbind()
            self._conn = None


def build_user_filter(term: str) -> str:
    """
    Назначение:
        LDAP-фильтр пользователей по префиксу; для пустого term все пользователи.
    """
    base = "(objectCategory=person)(objectClass=user)"
    value = escape_filter_chars((term or "").strip())
    if not value:
        return f"(&{base})"
    return (
        f"(&{base}(|(sAMAccountName={value}*)(userPrincipalName={value}*)(displayName={value}*)))"
    )


def entry_to_identity(attributes: dict[str, Any], raw_attributes: dict[str, Any]) -> OnPremIdentity:
    """
    Назначение:
        Запись LDAP -> OnPremIdentity.

    Алгоритм:
        objectGUID и mS-DS-ConsistencyGuid берутся из raw_attributes (байты),
        objectGUID интерпретируется как little-endian GUID.
    """
    guid_bytes = _first(raw_attributes.get("objectGUID"))
    object_guid = None
    if isinstance(guid_bytes, (bytes, bytearray)) and len(guid_bytes) == 16:
        object_guid = uuid.UUID(bytes_le=bytes(guid_bytes))

    consistency = _first(raw_attributes.get("mS-DS-ConsistencyGuid"))
    consistency_bytes = bytes(consistency) if isinstance(consistency, (bytes, bytearray)) and consistency else None

    return OnPremIdentity(
        object_guid=object_guid,
        consistency_guid=consistency_bytes,
        display_name=_text(attributes.get("displayName")),
        login_name=_text(attributes.get("sAMAccountName")),
        principal_name=_text(attributes.get("userPrincipalName")),
        distinguished_name=_text(attributes.get("distinguishedName")) or None,
    )


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _text(value: Any) -> str:
    value = _first(value)
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)
