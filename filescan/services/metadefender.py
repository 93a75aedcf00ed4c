from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from filescan.core.config import DEFAULT_BASE_URL, DEFAULT_REQUEST_TIMEOUT
from filescan.schemas.scan import ScanVerdict, parse_progress

logger = logging.getLogger(__name__)

BODY_EXCERPT_CHARS = 500


class MetaDefenderError(RuntimeError):
    """Base exception for scan service failures."""


class MetaDefenderConfigurationError(MetaDefenderError):
    """Raised when the client is missing its API key or base URL."""


class RemoteServiceError(MetaDefenderError):
    """
    The service answered with a non-success status.

    Attributes keep the context needed to diagnose the call without
    re-running it; the API key is never part of them.
    """

    def __init__(
        self,
        operation: str,
        *,
        status_code: int | None,
        subject: str,
        body: str = "",
        message: str | None = None,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        self.subject = subject
        self.body = body
        super().__init__(message or f"{operation} failed: status={status_code} subject={subject} body={body}")


class ServiceUnavailableError(RemoteServiceError):
    """Transport-level failure (timeout, connection reset); no status was received."""

    def __init__(self, operation: str, *, subject: str, reason: str) -> None:
        super().__init__(
            operation,
            status_code=None,
            subject=subject,
            message=f"{operation} failed: service unreachable subject={subject} reason={reason}",
        )


class MalformedResponseError(MetaDefenderError):
    """Success status, but the body breaks the response contract."""

    def __init__(self, operation: str, *, subject: str, reason: str) -> None:
        self.operation = operation
        self.subject = subject
        self.reason = reason
        super().__init__(f"{operation} returned a malformed response: subject={subject} reason={reason}")


def _excerpt(response: httpx.Response) -> str:
    text = (response.text or "").strip()
    if len(text) > BODY_EXCERPT_CHARS:
        return text[:BODY_EXCERPT_CHARS] + "..."
    return text


class MetaDefenderClient:
    """
    Async client for the three MetaDefender calls used by the scan workflow.

    Every method sends exactly one request; polling and retries belong to the
    caller. The client keeps no per-scan state, so several workflows may share
    one instance.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        key = (api_key or "").strip()
        if not key:
            raise MetaDefenderConfigurationError("METADEFENDER_API_KEY is not configured")
        root = (base_url or "").strip().rstrip("/")
        if not root:
            raise MetaDefenderConfigurationError("METADEFENDER_BASE_URL is not configured")

        self.base_url = root
        self._headers = {"apikey": key}
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "MetaDefenderClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ----------------------------
    # Operations
    # ----------------------------

    async def lookup_hash(self, fingerprint: str) -> ScanVerdict | None:
        """
        GET /hash/{fingerprint}.

        Returns None when the service has no cached result (404).
        """
        operation = "hash lookup"
        response = await self._send(operation, fingerprint, "GET", f"{self.base_url}/hash/{fingerprint}")
        if response.status_code == 404:
            logger.info("No cached verdict for %s", fingerprint)
            return None
        self._raise_for_status(operation, fingerprint, response)

        payload = self._json(operation, fingerprint, response)
        try:
            return ScanVerdict.from_payload(payload)
        except ValueError as exc:
            raise MalformedResponseError(operation, subject=fingerprint, reason=str(exc)) from exc

    async def upload_file(self, path: str | os.PathLike[str]) -> str:
        """POST /file with the file as a multipart attachment; returns the data_id."""
        operation = "file upload"
        filename = os.path.basename(os.fspath(path))

        with open(path, "rb") as fh:
            files = {"file": (filename, fh, "application/octet-stream")}
            response = await self._send(operation, filename, "POST", f"{self.base_url}/file", files=files)
        self._raise_for_status(operation, filename, response)

        payload = self._json(operation, filename, response)
        data_id = payload.get("data_id")
        if data_id is None or not str(data_id).strip():
            raise MalformedResponseError(operation, subject=filename, reason="data_id is missing")
        data_id = str(data_id).strip()
        logger.info("Uploaded %s as data_id=%s", filename, data_id)
        return data_id

    async def fetch_status(self, data_id: str) -> int:
        """GET /file/{data_id}; returns scan progress as a percentage."""
        operation = "scan status"
        response = await self._send(operation, data_id, "GET", f"{self.base_url}/file/{data_id}")
        self._raise_for_status(operation, data_id, response)

        payload = self._json(operation, data_id, response)
        try:
            return parse_progress(payload)
        except ValueError as exc:
            raise MalformedResponseError(operation, subject=data_id, reason=str(exc)) from exc

    # ----------------------------
    # Helpers
    # ----------------------------

    async def _send(self, operation: str, subject: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        logger.debug("%s: %s %s", operation, method, url)
        try:
            return await self._http.request(method, url, headers=self._headers, **kwargs)
        except httpx.TransportError as exc:
            raise ServiceUnavailableError(operation, subject=subject, reason=type(exc).__name__) from exc
        except httpx.HTTPError as exc:
            # Redirect loops, undecodable bodies: the call failed without a usable status.
            raise RemoteServiceError(
                operation,
                status_code=None,
                subject=subject,
                message=f"{operation} failed: subject={subject} reason={type(exc).__name__}",
            ) from exc

    @staticmethod
    def _raise_for_status(operation: str, subject: str, response: httpx.Response) -> None:
        if response.is_success:
            return
        raise RemoteServiceError(
            operation,
            status_code=response.status_code,
            subject=subject,
            body=_excerpt(response),
        )

    @staticmethod
    def _json(operation: str, subject: str, response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError(operation, subject=subject, reason="body is not JSON") from exc
        if not isinstance(payload, dict):
            raise MalformedResponseError(operation, subject=subject, reason="body is not a JSON object")
        return payload
