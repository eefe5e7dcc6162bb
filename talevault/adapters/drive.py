"""Google Drive v3 client over httpx with bounded retry."""

from __future__ import annotations

import asyncio
import json
import logging
import random
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from talevault.config import DriveConfig
from talevault.models.remote import FOLDER_MIME_TYPE, RemoteFile
from talevault.protocols.remote import AuthRequiredError, CredentialProvider, RemoteError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})
LIST_FIELDS = "nextPageToken,files(id,name,mimeType,modifiedTime,size)"
_SHARED_DRIVES = {"supportsAllDrives": "true"}


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Capped exponential delay with 50-100% jitter."""
    exponential = min(max_delay, base_delay * (2 ** (attempt - 1)))
    return min(max_delay, exponential * (0.5 + random.random() * 0.5))


def _multipart_related(metadata: dict[str, Any], data: bytes, mime_type: str) -> tuple[bytes, str]:
    boundary = f"talevault-{uuid.uuid4().hex}"
    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode()
    tail = f"\r\n--{boundary}--\r\n".encode()
    return head + data + tail, f"multipart/related; boundary={boundary}"


class DriveClient:
    """Implements ``RemoteStorage`` against the Drive REST API.

    Retries 429 and 5xx responses as well as transport errors up to
    ``max_attempts``. A 401 raises ``AuthRequiredError`` without retrying;
    any other non-success status raises ``RemoteError`` carrying the status.
    """

    def __init__(
        self,
        config: DriveConfig,
        credentials: CredentialProvider,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._credentials = credentials
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(config.timeout_s))

    async def __aenter__(self) -> DriveClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        label: str,
        send: Callable[[dict[str, str]], Awaitable[httpx.Response]],
        *,
        allow_status: frozenset[int] = frozenset(),
    ) -> httpx.Response:
        token = await self._credentials.get_valid_token()
        headers = {"Authorization": f"Bearer {token}"}
        max_attempts = self._config.max_attempts
        last_error: Exception | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                response = await send(headers)
            except httpx.TransportError as exc:
                last_error = exc
                logger.warning("%s transport error on attempt %d/%d: %s", label, attempt, max_attempts, exc)
            else:
                if response.status_code == 401:
                    raise AuthRequiredError("Session expired. Please sign in again.")
                if response.is_success or response.status_code in allow_status:
                    return response
                if response.status_code not in RETRYABLE_STATUS:
                    raise RemoteError(f"{label} failed with {response.status_code}", status=response.status_code)
                last_error = RemoteError(
                    f"{label} failed after {max_attempts} attempts (status {response.status_code})",
                    status=response.status_code,
                )
            if attempt < max_attempts:
                await asyncio.sleep(backoff_delay(attempt, self._config.base_delay_s, self._config.max_delay_s))

        if isinstance(last_error, RemoteError):
            raise last_error
        raise RemoteError(f"{label} failed after {max_attempts} attempts: {last_error}") from last_error

    async def create_folder(self, name: str, parent_id: str) -> str:
        body = {"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]}

        async def send(headers: dict[str, str]) -> httpx.Response:
            return await self._http.post(
                f"{self._config.api_base}/files",
                params={"fields": "id", **_SHARED_DRIVES},
                json=body,
                headers=headers,
            )

        response = await self._request("create folder", send)
        return str(response.json()["id"])

    async def list_files(self, parent_id: str) -> list[RemoteFile]:
        files: list[RemoteFile] = []
        page_token: str | None = None
        while True:
            params = {
                "q": f"'{parent_id}' in parents and trashed=false",
                "fields": LIST_FIELDS,
                "pageSize": "1000",
                "includeItemsFromAllDrives": "true",
                **_SHARED_DRIVES,
            }
            if page_token:
                params["pageToken"] = page_token

            async def send(headers: dict[str, str], params: dict[str, str] = params) -> httpx.Response:
                return await self._http.get(f"{self._config.api_base}/files", params=params, headers=headers)

            payload = (await self._request("list files", send)).json()
            files.extend(RemoteFile.model_validate(item) for item in payload.get("files", []))
            page_token = payload.get("nextPageToken")
            if not page_token:
                return files

    async def upload(
        self,
        parent_id: str,
        name: str,
        data: bytes,
        mime_type: str,
        existing_id: str | None = None,
    ) -> str:
        metadata: dict[str, Any] = {"name": name, "mimeType": mime_type}
        if existing_id is None:
            metadata["parents"] = [parent_id]
        body, content_type = _multipart_related(metadata, data, mime_type)
        params = {"uploadType": "multipart", "fields": "id", **_SHARED_DRIVES}

        async def send(headers: dict[str, str]) -> httpx.Response:
            request_headers = {**headers, "Content-Type": content_type}
            if existing_id is None:
                return await self._http.post(
                    f"{self._config.upload_base}/files", params=params, content=body, headers=request_headers
                )
            return await self._http.patch(
                f"{self._config.upload_base}/files/{existing_id}",
                params=params,
                content=body,
                headers=request_headers,
            )

        response = await self._request("upload", send)
        return str(response.json().get("id") or existing_id)

    async def delete_file(self, file_id: str) -> None:
        async def send(headers: dict[str, str]) -> httpx.Response:
            return await self._http.delete(
                f"{self._config.api_base}/files/{file_id}", params=_SHARED_DRIVES, headers=headers
            )

        # Already gone counts as deleted.
        await self._request("delete file", send, allow_status=frozenset({404}))

    async def fetch_binary(self, file_id: str) -> bytes:
        async def send(headers: dict[str, str]) -> httpx.Response:
            return await self._http.get(
                f"{self._config.api_base}/files/{file_id}",
                params={"alt": "media", **_SHARED_DRIVES},
                headers=headers,
            )

        return (await self._request("fetch file", send)).content


__all__ = ["DriveClient", "RETRYABLE_STATUS", "backoff_delay"]
