# filescan/core/config.py
import os

from dotenv import load_dotenv

DEFAULT_BASE_URL = "https://api.metadefender.com/v4"
DEFAULT_REQUEST_TIMEOUT = 30.0


def str_to_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value.strip())


def str_to_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    return float(value.strip())


class Settings:
    def __init__(self) -> None:
        self.ENV = os.getenv("ENV", "dev").strip().lower()  # dev | prod
        if self.ENV != "prod":
            # Load .env only for non-prod so prod can't be accidentally influenced by local files.
            load_dotenv()

        # ----------------------------
        # MetaDefender
        # ----------------------------
        # No usable default: the key must come from the environment or the CLI.
        self.METADEFENDER_API_KEY = os.getenv("METADEFENDER_API_KEY", "").strip()
        self.METADEFENDER_BASE_URL = (
            os.getenv("METADEFENDER_BASE_URL", DEFAULT_BASE_URL).strip().rstrip("/") or DEFAULT_BASE_URL
        )
        self.METADEFENDER_REQUEST_TIMEOUT = str_to_float(
            os.getenv("METADEFENDER_REQUEST_TIMEOUT"), DEFAULT_REQUEST_TIMEOUT
        )

        # ----------------------------
        # Scan workflow
        # ----------------------------
        self.SCAN_POLL_INTERVAL_SECONDS = str_to_float(os.getenv("SCAN_POLL_INTERVAL_SECONDS"), 10.0)
        # 0 disables the overall bound
        self.SCAN_TIMEOUT_SECONDS = str_to_float(os.getenv("SCAN_TIMEOUT_SECONDS"), 900.0)
        self.SCAN_CONCURRENCY = str_to_int(os.getenv("SCAN_CONCURRENCY"), 4)

        # ----------------------------
        # Logging
        # ----------------------------
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING").strip().upper() or "WARNING"

        self._validate()

    def _validate(self) -> None:
        if not self.METADEFENDER_BASE_URL.startswith(("https://", "http://")):
            raise RuntimeError("METADEFENDER_BASE_URL must be an http(s) URL")
        if self.SCAN_POLL_INTERVAL_SECONDS < 0:
            raise RuntimeError("SCAN_POLL_INTERVAL_SECONDS must be >= 0")
        if self.SCAN_TIMEOUT_SECONDS < 0:
            raise RuntimeError("SCAN_TIMEOUT_SECONDS must be >= 0")
        if self.SCAN_CONCURRENCY < 1:
            raise RuntimeError("SCAN_CONCURRENCY must be >= 1")
        if self.METADEFENDER_REQUEST_TIMEOUT <= 0:
            raise RuntimeError("METADEFENDER_REQUEST_TIMEOUT must be > 0")

    @property
    def scan_timeout(self) -> float | None:
        return self.SCAN_TIMEOUT_SECONDS or None


settings = Settings()
