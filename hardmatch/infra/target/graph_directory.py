from __future__ import annotations

from typing import Any
from urllib.parse import quote

from hardmatch.domain.error_codes import ErrorCode
from hardmatch.domain.models import CloudIdentity
from hardmatch.domain.ports.directory import CloudDirectoryProtocol, CloudSearchProtocol
from hardmatch.infra.http.graph_client import ApiError, GraphApiClient

USER_SELECT = "id,userPrincipalName,mail,displayName,onPremisesImmutableId,onPremisesSyncEnabled"


class GraphCloudDirectory(CloudDirectoryProtocol, CloudSearchProtocol):
    """
    Назначение/ответственность:
        Адаптер облачного каталога поверх Microsoft Graph /users.
    Взаимодействия:
        Использует GraphApiClient; ошибки ApiError пробрасываются как есть,
        в OutcomeRecord их превращает LinkageEngine.
    """

    def __init__(self, client: GraphApiClient):
        self.client = client

    def fetch_cloud(self, cloud_id: str) -> CloudIdentity:
        data = self.client.getJson(_user_path(cloud_id), params={"$select": USER_SELECT})
        if not isinstance(data, dict):
            raise ApiError("Unexpected user payload", code=ErrorCode.INVALID_JSON.value)
        return user_to_identity(data)

    def write_anchor(self, cloud_id: str, anchor_text: str) -> None:
        self.client.patchJson(_user_path(cloud_id), {"onPremisesImmutableId": anchor_text})

    def search(self, term: str, limit: int) -> list[CloudIdentity]:
        """
        Назначение:
            Поиск по началу UPN, displayName или mail.
        """
        value = escape_odata_string(term.strip())
        if not value:
            return []
        flt = (
            f"startswith(userPrincipalName,'{value}') "
            f"or startswith(displayName,'{value}') "
            f"or startswith(mail,'{value}')"
        )
        data = self.client.getJson(
            "/users",
            params={"$filter": flt, "$select": USER_SELECT, "$top": str(limit)},
        )
        items = _extract_items(data)
        return [user_to_identity(item) for item in items[:limit] if isinstance(item, dict)]

    def ping(self) -> None:
        self.client.getJson("/users", params={"$top": "1", "$select": "id"})


def user_to_identity(data: dict[str, Any]) -> CloudIdentity:
    """
    Назначение:
        JSON пользователя Graph -> CloudIdentity.
        null в onPremisesImmutableId -> "", null в onPremisesSyncEnabled -> False.
    """
    cloud_id = data.get("id")
    if not cloud_id:
        raise ApiError("User payload has no id", code=ErrorCode.INVALID_JSON.value)
    return CloudIdentity(
        cloud_id=str(cloud_id),
        principal_name=data.get("userPrincipalName") or "",
        mail=data.get("mail") or "",
        immutable_id=data.get("onPremisesImmutableId") or "",
        sync_enabled=bool(data.get("onPremisesSyncEnabled")),
        display_name=data.get("displayName") or "",
    )


def escape_odata_string(value: str) -> str:
    """Экранирует одинарные кавычки для литерала OData."""
    return value.replace("'", "''")


def _user_path(cloud_id: str) -> str:
    return f"/users/{quote(cloud_id, safe='@')}"


def _extract_items(data: Any) -> list[Any]:
    if isinstance(data, dict) and isinstance(data.get("value"), list):
        return data["value"]
    if isinstance(data, list):
        return data
    raise ApiError("Unexpected response format: no value array", code=ErrorCode.INVALID_JSON.value)
