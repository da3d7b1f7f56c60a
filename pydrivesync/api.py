"""API client for Google Drive (v3 REST)."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any

import httpx

from .exceptions import (
    DriveAPIError,
    DriveAuthExpiredError,
    DriveInvalidResponseError,
    DriveNetworkError,
    DriveNotFoundError,
    DrivePermissionError,
    DriveQuotaExceededError,
    DriveRateLimitError,
    DriveTransientError,
)
from .models import FILE_FIELDS, FOLDER_MIME_TYPE, DriveFile
from .sync.protocols import EntryKind, TokenProvider
from .utils import DEFAULT_MAX_DEPTH, DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY

logger = logging.getLogger(__name__)

DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"

MULTIPART_BOUNDARY = "-------314159265358979323846"

RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}
QUOTA_REASONS = {"storageQuotaExceeded", "quotaExceeded", "dailyLimitExceeded"}


def escape_query_value(value: str) -> str:
    """Escape a string literal for use in a Drive search query."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_multipart_body(
    metadata: dict[str, Any],
    content: str | bytes,
    mime_type: str,
) -> bytes:
    """Build a multipart/related body with metadata and content parts.

    Text content is embedded as is. Binary content is base64 encoded and
    marked with a Content-Transfer-Encoding header.

    Args:
        metadata: File metadata (name, parents, modifiedTime, ...)
        content: File content
        mime_type: MIME type of the content part

    Returns:
        Encoded body; send it with multipart_content_type()
    """
    delimiter = f"\r\n--{MULTIPART_BOUNDARY}\r\n"
    close_delim = f"\r\n--{MULTIPART_BOUNDARY}--"

    head = (
        delimiter
        + "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        + json.dumps(metadata)
        + delimiter
    )
    if isinstance(content, bytes):
        head += (
            f"Content-Type: {mime_type}\r\n"
            "Content-Transfer-Encoding: base64\r\n\r\n"
        )
        payload = base64.b64encode(content)
    else:
        head += f"Content-Type: {mime_type}; charset=UTF-8\r\n\r\n"
        payload = content.encode("utf-8")
    return head.encode("utf-8") + payload + close_delim.encode("utf-8")


def multipart_content_type() -> str:
    return f'multipart/related; boundary="{MULTIPART_BOUNDARY}"'


class DriveClient:
    """Async client for the Google Drive API.

    Implements the RemoteStore protocol used by the sync engine. Transient
    failures are retried with a linear backoff; a rejected token triggers
    one forced refresh through the token provider before giving up.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        api_url: str = DRIVE_API_URL,
        upload_url: str = DRIVE_UPLOAD_URL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 30.0,
        max_depth: int = DEFAULT_MAX_DEPTH,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Drive API client.

        Args:
            token_provider: Supplies OAuth access tokens
            api_url: Base URL of the metadata API
            upload_url: Base URL of the upload API
            max_retries: Maximum number of retries for transient errors
            retry_delay: Delay unit between retries in seconds
            timeout: Request timeout in seconds
            max_depth: Deepest folder level followed by recursive listings
            transport: Optional httpx transport (used by tests)
        """
        self.token_provider = token_provider
        self.api_url = api_url.rstrip("/")
        self.upload_url = upload_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.max_depth = max_depth
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> DriveClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # =========================
    # Request layer
    # =========================

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Linear backoff: retry_delay, 2 * retry_delay, ..."""
        return self.retry_delay * (attempt + 1)

    @staticmethod
    def _error_reason(response: httpx.Response) -> tuple[str | None, str | None]:
        """Extract (reason, message) from a Drive error body."""
        try:
            data = response.json()
        except ValueError:
            return None, None
        if not isinstance(data, dict) or not isinstance(data.get("error"), dict):
            return None, None
        error = data["error"]
        reason = None
        errors = error.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            reason = errors[0].get("reason")
        return reason, error.get("message")

    def _map_http_error(self, response: httpx.Response) -> DriveAPIError:
        """Translate an error response into our exception taxonomy."""
        status_code = response.status_code
        reason, message = self._error_reason(response)
        detail = f": {message}" if message else ""

        if status_code == 401:
            return DriveAuthExpiredError(
                f"Access token rejected{detail}", status_code
            )
        if status_code == 403:
            if reason in RATE_LIMIT_REASONS:
                return DriveRateLimitError(f"Rate limit exceeded{detail}", status_code)
            if reason in QUOTA_REASONS:
                return DriveQuotaExceededError(f"Quota exceeded{detail}", status_code)
            return DrivePermissionError(f"Access forbidden{detail}", status_code)
        if status_code == 404:
            return DriveNotFoundError(f"Resource not found{detail}", status_code)
        if status_code == 429:
            retry_after = response.headers.get("Retry-After")
            return DriveRateLimitError(
                f"Rate limit exceeded{detail}",
                status_code,
                retry_after=float(retry_after)
                if retry_after and retry_after.isdigit()
                else None,
            )
        if 500 <= status_code < 600:
            return DriveTransientError(
                f"Server error {status_code}{detail}", status_code
            )
        return DriveAPIError(
            f"API request failed with status {status_code}{detail}", status_code
        )

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request with auth, token refresh and retry handling.

        Args:
            method: HTTP method
            url: Absolute URL
            **kwargs: Additional arguments passed to httpx

        Returns:
            Successful response

        Raises:
            DriveAPIError: If the request fails after all retries
        """
        client = self._get_client()
        extra_headers = kwargs.pop("headers", {})
        token = await self.token_provider.get_valid_access_token()
        refreshed = False
        attempt = 0

        while True:
            headers = {"Authorization": f"Bearer {token}", **extra_headers}
            try:
                response = await client.request(method, url, headers=headers, **kwargs)
            except httpx.RequestError as e:
                error: DriveAPIError = DriveNetworkError(f"Network error: {e}")
            else:
                if response.is_success:
                    return response
                if response.status_code == 401 and not refreshed:
                    logger.debug("Access token rejected, refreshing once")
                    token = await self.token_provider.get_valid_access_token(
                        force_refresh=True
                    )
                    refreshed = True
                    continue
                error = self._map_http_error(response)

            retryable = isinstance(error, DriveTransientError)
            if not retryable or attempt >= self.max_retries:
                raise error

            delay = self._calculate_retry_delay(attempt)
            if isinstance(error, DriveRateLimitError) and error.retry_after:
                delay = error.retry_after
            logger.debug(
                f"{method} {url} failed ({error}), retry {attempt + 1}/"
                f"{self.max_retries} in {delay:.1f}s"
            )
            attempt += 1
            await asyncio.sleep(delay)

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make a metadata API request and decode the JSON response."""
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        response = await self._send(method, url, **kwargs)
        return self._json(response)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        content_type = response.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            raise DriveInvalidResponseError(
                f"Unexpected response type: {content_type}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise DriveInvalidResponseError("Invalid JSON response from server") from e

    # =========================
    # Listing
    # =========================

    async def _list_query(self, query: str, page_size: int = 1000) -> list[dict]:
        """Run a files.list query, following every page."""
        files: list[dict] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {
                "q": query,
                "fields": f"nextPageToken,files({FILE_FIELDS})",
                "pageSize": page_size,
            }
            if page_token:
                params["pageToken"] = page_token
            data = await self._request("GET", "/files", params=params)
            files.extend(data.get("files", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                return files

    async def list_children(
        self, folder_id: str, recursive: bool = False
    ) -> list[DriveFile]:
        """List the entries below a folder.

        Args:
            folder_id: Folder to list
            recursive: Descend into subfolders (bounded by max_depth)

        Returns:
            DriveFile objects whose relative_path is relative to folder_id.
            Recursive listings include the subfolders themselves.
        """
        result: list[DriveFile] = []
        visited: set[str] = set()
        await self._walk(folder_id, "", 0, recursive, visited, result)
        return result

    async def _walk(
        self,
        folder_id: str,
        prefix: str,
        depth: int,
        recursive: bool,
        visited: set[str],
        result: list[DriveFile],
    ) -> None:
        # Prevent cycles through multi-parent folders
        if folder_id in visited:
            return
        visited.add(folder_id)

        query = f"'{escape_query_value(folder_id)}' in parents and trashed=false"
        for data in await self._list_query(query):
            name = data.get("name", "")
            path = f"{prefix}/{name}" if prefix else name
            entry = DriveFile.from_api_response(data, relative_path=path)
            result.append(entry)
            if entry.is_folder and recursive:
                if depth + 1 >= self.max_depth:
                    logger.warning(f"Not descending into {path}: max depth reached")
                    continue
                await self._walk(entry.id, path, depth + 1, recursive, visited, result)

    async def find_child(
        self, name: str, parent_id: str, kind: EntryKind | None = None
    ) -> DriveFile | None:
        """Find a direct child of a folder by name.

        Args:
            name: Exact name to look for
            parent_id: Folder to search in
            kind: Restrict to files or folders

        Returns:
            First match, or None
        """
        query = (
            f"name='{escape_query_value(name)}' and "
            f"'{escape_query_value(parent_id)}' in parents and trashed=false"
        )
        if kind is EntryKind.FOLDER:
            query += f" and mimeType='{FOLDER_MIME_TYPE}'"
        elif kind is EntryKind.FILE:
            query += f" and mimeType!='{FOLDER_MIME_TYPE}'"
        matches = await self._list_query(query, page_size=10)
        if not matches:
            return None
        return DriveFile.from_api_response(matches[0])

    # =========================
    # Content
    # =========================

    async def get_content(self, file_id: str) -> bytes:
        """Download the raw content of a file."""
        url = f"{self.api_url}/files/{file_id}"
        response = await self._send("GET", url, params={"alt": "media"})
        return response.content

    async def create_file(
        self,
        name: str,
        parent_id: str,
        content: str | bytes | None,
        metadata: dict | None = None,
        mime_type: str = "text/plain",
    ) -> DriveFile:
        """Create a new file.

        Without content only the metadata object is created; the content can
        be sent afterwards with update_file().

        Args:
            name: File name
            parent_id: Folder the file is created in
            content: File content, or None for a metadata-only create
            metadata: Additional metadata (e.g. modifiedTime)
            mime_type: MIME type of the content

        Returns:
            Created file
        """
        body = {"name": name, "parents": [parent_id], **(metadata or {})}
        params = {"fields": FILE_FIELDS}

        if content is None:
            data = await self._request(
                "POST", "/files", params=params, json={**body, "mimeType": mime_type}
            )
        else:
            response = await self._send(
                "POST",
                f"{self.upload_url}/files",
                params={**params, "uploadType": "multipart"},
                content=build_multipart_body(body, content, mime_type),
                headers={"Content-Type": multipart_content_type()},
            )
            data = self._json(response)
        return DriveFile.from_api_response(data)

    async def update_file(
        self,
        file_id: str,
        content: str | bytes | None,
        metadata: dict | None = None,
        mime_type: str = "text/plain",
    ) -> DriveFile:
        """Update the content and/or metadata of an existing file.

        Content is streamed as the raw request body (uploadType=media), so
        no base64 expansion happens for large files.

        Args:
            file_id: File to update
            content: New content, or None to update metadata only
            metadata: Metadata fields to change
            mime_type: MIME type of the content

        Returns:
            Updated file
        """
        params = {"fields": FILE_FIELDS}

        if content is None:
            data = await self._request(
                "PATCH", f"/files/{file_id}", params=params, json=metadata or {}
            )
            return DriveFile.from_api_response(data)

        url = f"{self.upload_url}/files/{file_id}"
        if metadata:
            response = await self._send(
                "PATCH",
                url,
                params={**params, "uploadType": "multipart"},
                content=build_multipart_body(metadata, content, mime_type),
                headers={"Content-Type": multipart_content_type()},
            )
        else:
            raw = content.encode("utf-8") if isinstance(content, str) else content
            response = await self._send(
                "PATCH",
                url,
                params={**params, "uploadType": "media"},
                content=raw,
                headers={"Content-Type": mime_type},
            )
        return DriveFile.from_api_response(self._json(response))

    # =========================
    # Folders and misc
    # =========================

    async def create_folder(self, name: str, parent_id: str) -> DriveFile:
        """Create a folder inside parent_id."""
        data = await self._request(
            "POST",
            "/files",
            params={"fields": FILE_FIELDS},
            json={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
        )
        return DriveFile.from_api_response(data)

    async def delete_file(self, file_id: str) -> None:
        """Permanently delete a file or folder."""
        await self._request("DELETE", f"/files/{file_id}")

    async def about(self) -> dict[str, Any]:
        """Return information about the authenticated user."""
        result: dict[str, Any] = await self._request(
            "GET", "/about", params={"fields": "user"}
        )
        return result
