from __future__ import annotations

import asyncio
import logging
import os
import threading
from typing import Protocol

from filescan.schemas.scan import ScanOutcome, ScanVerdict
from filescan.services.hasher import CHUNK_SIZE, sha256_file
from filescan.services.metadefender import (
    MalformedResponseError,
    MetaDefenderError,
    ServiceUnavailableError,
)

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 10.0
COMPLETE = 100


class ScanTimeoutError(MetaDefenderError):
    """Raised when a scan does not finish within the configured timeout."""

    def __init__(self, *, fingerprint: str | None, data_id: str | None, timeout: float) -> None:
        self.fingerprint = fingerprint
        self.data_id = data_id
        self.timeout = timeout
        super().__init__(
            f"scan did not finish within {timeout:g}s: fingerprint={fingerprint} data_id={data_id}"
        )


class ScanServiceClient(Protocol):
    async def lookup_hash(self, fingerprint: str) -> ScanVerdict | None: ...

    async def upload_file(self, path: str | os.PathLike[str]) -> str: ...

    async def fetch_status(self, data_id: str) -> int: ...


class ScanOrchestrator:
    """
    Cache-first scan of a single file.

    hash -> lookup -> (hit) verdict
                   -> (miss) upload -> poll until 100% -> lookup again -> verdict

    One instance drives one workflow at a time; scan several files with one
    orchestrator each.
    """

    def __init__(
        self,
        client: ScanServiceClient,
        *,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        timeout: float | None = None,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        if poll_interval < 0:
            raise ValueError("poll_interval must be >= 0")
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be > 0 (or None for no limit)")
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.client = client
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._fingerprint: str | None = None
        self._data_id: str | None = None

    async def scan(self, path: str | os.PathLike[str]) -> ScanOutcome:
        """
        Run the workflow for ``path``.

        Raises:
            OSError: the file can't be read.
            RemoteServiceError: the service answered with a non-success status.
            MalformedResponseError: a success response broke the contract.
            ScanTimeoutError: ``timeout`` elapsed first.

        Cancelling the calling task stops the workflow at its current await.
        """
        self._fingerprint = None
        self._data_id = None
        if self.timeout is None:
            return await self._run(path)
        try:
            return await asyncio.wait_for(self._run(path), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise ScanTimeoutError(
                fingerprint=self._fingerprint, data_id=self._data_id, timeout=self.timeout
            ) from exc

    async def _run(self, path: str | os.PathLike[str]) -> ScanOutcome:
        fingerprint = await self._hash(path)
        self._fingerprint = fingerprint
        logger.info("Hashed %s -> %s", os.fspath(path), fingerprint)

        verdict = await self.client.lookup_hash(fingerprint)
        if verdict is not None:
            logger.info("Cached verdict found for %s", fingerprint)
            return ScanOutcome(verdict=verdict, fingerprint=fingerprint, cached=True)

        data_id = await self.client.upload_file(path)
        self._data_id = data_id

        checks = await self._wait_for_completion(data_id)

        verdict = await self.client.lookup_hash(fingerprint)
        if verdict is None:
            # The scan finished but the cache has no entry for it; don't re-upload.
            raise MalformedResponseError(
                "hash lookup",
                subject=fingerprint,
                reason=f"no verdict after scan of data_id={data_id} completed",
            )
        logger.info("Scan of %s complete after %d status checks", fingerprint, checks)
        return ScanOutcome(
            verdict=verdict,
            fingerprint=fingerprint,
            cached=False,
            data_id=data_id,
            status_checks=checks,
        )

    async def _hash(self, path: str | os.PathLike[str]) -> str:
        # The worker thread can't be cancelled; the flag makes it close the file and exit.
        stop = threading.Event()
        try:
            return await asyncio.to_thread(sha256_file, path, chunk_size=self.chunk_size, stop=stop)
        except asyncio.CancelledError:
            stop.set()
            raise

    async def _wait_for_completion(self, data_id: str) -> int:
        checks = 0
        while True:
            checks += 1
            try:
                progress = await self.client.fetch_status(data_id)
            except ServiceUnavailableError as exc:
                logger.warning("Status check %d for data_id=%s failed, retrying: %s", checks, data_id, exc)
            else:
                logger.debug("data_id=%s progress=%d%%", data_id, progress)
                if progress >= COMPLETE:
                    return checks
            await asyncio.sleep(self.poll_interval)
