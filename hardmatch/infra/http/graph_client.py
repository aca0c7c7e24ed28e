from __future__ import annotations

import time
from typing import Any

import httpx

from hardmatch.common.sanitize import truncateText
from hardmatch.domain.error_codes import ErrorCode
from hardmatch.errors import AppError


class ApiError(AppError):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body_snippet: str | None = None,
        retryable: bool = False,
        details: dict | None = None,
        code: str | None = None,
    ):
        """
        Назначение:
            Исключение для ошибок HTTP/API уровня GraphApiClient.
        Контракт:
            - code: значение ErrorCode (UNAUTHORIZED, NOT_FOUND, NETWORK_ERROR и т.п.).
            - status_code/body_snippet используются для диагностики.
        """
        super().__init__(
            category="api",
            code=code or ErrorCode.from_status(status_code).value,
            message=message,
            retryable=retryable,
            details=details or {},
        )
        self.status_code = status_code
        self.body_snippet = body_snippet


class GraphApiClient:
    def __init__(
        self,
        baseUrl: str,
        token: str,
        timeoutSeconds: float = 20.0,
        tlsSkipVerify: bool = False,
        caFile: str | None = None,
        retries: int = 3,
        retryBackoffSeconds: float = 0.5,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Назначение:
            Клиент Microsoft Graph (v1.0) с политикой ретраев только для чтения.
        Контракт:
            - token: готовый bearer-токен, получение токена вне клиента.
            - GET повторяется при 429/5xx и сетевых ошибках.
            - PATCH выполняется ровно один раз: потерянный ответ не маскируется повтором.
        """
        verify: bool | str = True
        if tlsSkipVerify:
            verify = False
        elif caFile:
            verify = caFile

        self.baseUrl = baseUrl.rstrip("/")
        self.token = token
        self.retries = retries
        self.retryBackoffSeconds = retryBackoffSeconds
        self.retry_attempts = 0

        self.client = httpx.Client(
            base_url=self.baseUrl,
            timeout=timeoutSeconds,
            verify=verify,
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def getRetryAttempts(self) -> int:
        """Возвращает количество выполненных повторных попыток."""
        return self.retry_attempts

    def _headers(self) -> dict[str, str]:
        return {
            "accept": "application/json",
            "Authorization": f"Bearer {self.token}",
            "ConsistencyLevel": "eventual",
        }

    def _should_retry(self, resp: httpx.Response) -> bool:
        """Решает, стоит ли повторить запрос (429 или 5xx)."""
        if resp.status_code == 429:
            return True
        if 500 <= resp.status_code <= 599:
            return True
        return False

    def _retry_delay(self, resp: httpx.Response | None, attempt: int) -> float:
        """Retry-After от Graph, иначе экспоненциальная задержка."""
        if resp is not None:
            header = resp.headers.get("Retry-After")
            if header:
                try:
                    return max(0.0, float(header))
                except ValueError:
                    pass
        return self.retryBackoffSeconds * (2 ** attempt)

    def _error_from_response(self, resp: httpx.Response) -> ApiError:
        body_snippet = truncateText(resp.text, 200) if resp.text else None
        message = f"HTTP {resp.status_code}"
        graph_message = _graph_error_message(resp)
        if graph_message:
            message = f"{message}: {graph_message}"
        return ApiError(
            message,
            status_code=resp.status_code,
            body_snippet=body_snippet,
            retryable=self._should_retry(resp),
            details={"body_snippet": body_snippet},
        )

    def _send(self, method: str, path: str, params: dict[str, Any] | None, jsonBody: Any | None) -> httpx.Response:
        try:
            return self.client.request(method, path, params=params, headers=self._headers(), json=jsonBody)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise ApiError(f"Network error: {exc}", status_code=None, retryable=True, code=ErrorCode.NETWORK_ERROR.value) from exc

    def getJson(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET JSON с ретраями по 429/5xx и сетевым ошибкам, иначе ApiError."""
        attempt = 0
        while True:
            try:
                resp = self._send("GET", path, params or {}, None)
            except ApiError:
                if attempt >= self.retries:
                    raise
                self.retry_attempts += 1
                time.sleep(self._retry_delay(None, attempt))
                attempt += 1
                continue

            if resp.status_code == 200:
                try:
                    return resp.json()
                except ValueError as exc:
                    raise ApiError(
                        "Invalid JSON response",
                        status_code=resp.status_code,
                        retryable=False,
                        code=ErrorCode.INVALID_JSON.value,
                    ) from exc

            if self._should_retry(resp) and attempt < self.retries:
                self.retry_attempts += 1
                time.sleep(self._retry_delay(resp, attempt))
                attempt += 1
                continue

            raise self._error_from_response(resp)

    def patchJson(self, path: str, jsonBody: Any) -> int:
        """
        Назначение:
            PATCH без повторов. Успех: 200/204, иначе ApiError.
        """
        resp = self._send("PATCH", path, None, jsonBody)
        if resp.status_code in (200, 204):
            return resp.status_code
        raise self._error_from_response(resp)


def _graph_error_message(resp: httpx.Response) -> str | None:
    """Достаёт error.message из тела ответа Graph, если оно есть."""
    if not resp.text:
        return None
    try:
        data = resp.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message:
                return message
    return None
