import os

# Keep a developer's local .env out of the test run.
os.environ.setdefault("ENV", "prod")

from typing import Any, Callable

import httpx
import pytest

from filescan.schemas.scan import ScanVerdict
from filescan.services.metadefender import MetaDefenderClient

BASE_URL = "https://md.example.invalid/v4"
API_KEY = "test-api-key"


def verdict_payload(
    *,
    filename: str = "sample.exe",
    result: str = "No Threat Detected",
    engines: dict[str, dict[str, Any]] | None = None,
) -> dict[str, Any]:
    if engines is None:
        engines = {
            "EngineX": {"threat_found": "", "scan_result_i": 0, "def_time": "2024-05-01T00:00:00.000Z"},
        }
    return {
        "file_info": {"display_name": filename},
        "process_info": {"result": result},
        "scan_results": {"scan_details": engines},
    }


def make_verdict(**kwargs: Any) -> ScanVerdict:
    return ScanVerdict.from_payload(verdict_payload(**kwargs))


@pytest.fixture()
def sample_file(tmp_path):
    path = tmp_path / "sample.exe"
    path.write_bytes(b"MZ\x90\x00not really a binary")
    return path


@pytest.fixture()
def make_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], MetaDefenderClient]:
    """
    Build a MetaDefenderClient whose HTTP traffic goes to ``handler`` instead of the network.
    """

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> MetaDefenderClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return MetaDefenderClient(api_key=API_KEY, base_url=BASE_URL, http_client=http)

    return _make


class StubScanClient:
    """
    Scripted stand-in for MetaDefenderClient that records every call.

    ``lookups`` / ``statuses`` are consumed in order; an item that is an
    exception instance is raised instead of returned.
    """

    def __init__(self, *, lookups: list[Any], statuses: list[Any] | None = None, upload: Any = "d-1"):
        self.lookups = list(lookups)
        self.statuses = list(statuses or [])
        self.upload = upload
        self.calls: list[tuple[str, Any]] = []

    @staticmethod
    def _next(items: list[Any]) -> Any:
        item = items.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def lookup_hash(self, fingerprint: str):
        self.calls.append(("lookup_hash", fingerprint))
        return self._next(self.lookups)

    async def upload_file(self, path):
        self.calls.append(("upload_file", str(path)))
        if isinstance(self.upload, BaseException):
            raise self.upload
        return self.upload

    async def fetch_status(self, data_id: str):
        self.calls.append(("fetch_status", data_id))
        return self._next(self.statuses)

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)
