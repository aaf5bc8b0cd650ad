"""
Ledger configuration from environment variables.

Environment Variables:
    LEDGER_BACKEND: file, s3, sql or memory (default: file)
    LEDGER_PATH: Directory for the file backend (default: ./ledger-data)
    LEDGER_DATABASE_URL: SQLAlchemy URL for the sql backend (default: sqlite:///ledger.db)
    LEDGER_S3_BUCKET, LEDGER_S3_PREFIX, LEDGER_S3_ENDPOINT_URL, LEDGER_S3_REGION
    LEDGER_S3_SKIP_BUCKET_CHECK: true to skip head_bucket on startup
    LEDGER_MAX_PAYLOAD_BYTES: Payload size limit (default: 65536)
    LEDGER_MAX_APPEND_RETRIES: Attempts per append under contention (default: 8)
    LEDGER_RETRY_BACKOFF_SECONDS: Initial backoff window, doubled per attempt (default: 0.01)
    LEDGER_LOG_LEVEL, LEDGER_LOG_FORMAT: see ledger.logging_config
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

ENV_PREFIX = "LEDGER_"

BACKENDS = ("file", "s3", "sql", "memory")


def _env_str(env: Mapping[str, str], key: str) -> Optional[str]:
    val = env.get(ENV_PREFIX + key)
    if val is None or not val.strip():
        return None
    return val.strip()


def _env_int(env: Mapping[str, str], key: str) -> Optional[int]:
    val = _env_str(env, key)
    if val is None:
        return None
    try:
        parsed = int(val)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _env_float(env: Mapping[str, str], key: str) -> Optional[float]:
    val = _env_str(env, key)
    if val is None:
        return None
    try:
        parsed = float(val)
    except ValueError:
        return None
    return parsed if parsed >= 0 else None


def _env_bool(env: Mapping[str, str], key: str) -> bool:
    return (_env_str(env, key) or "").lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class LedgerSettings:
    backend: str = "file"
    path: str = "./ledger-data"
    database_url: str = "sqlite:///ledger.db"
    s3_bucket: Optional[str] = None
    s3_prefix: str = "ledger"
    s3_endpoint_url: Optional[str] = None
    s3_region: str = "us-east-1"
    s3_skip_bucket_check: bool = False
    max_payload_bytes: int = 65536
    max_append_retries: int = 8
    retry_backoff_seconds: float = 0.01
    log_level: str = "INFO"
    log_format: str = "json"

    def validate(self) -> None:
        if self.backend not in BACKENDS:
            raise ValueError(f"unknown ledger backend: {self.backend} (expected one of {BACKENDS})")
        if self.backend == "s3" and not self.s3_bucket:
            raise ValueError("LEDGER_S3_BUCKET must be set for the s3 backend")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "LedgerSettings":
        """
        Load settings from environment variables.

        Invalid numeric values fall back to defaults.

        Args:
            env: Mapping to read instead of os.environ (tests)

        Raises:
            ValueError: If the backend is unknown or misconfigured
        """
        source = os.environ if env is None else env
        settings = cls(
            backend=(_env_str(source, "BACKEND") or cls.backend).lower(),
            path=_env_str(source, "PATH") or cls.path,
            database_url=_env_str(source, "DATABASE_URL") or cls.database_url,
            s3_bucket=_env_str(source, "S3_BUCKET"),
            s3_prefix=_env_str(source, "S3_PREFIX") or cls.s3_prefix,
            s3_endpoint_url=_env_str(source, "S3_ENDPOINT_URL"),
            s3_region=_env_str(source, "S3_REGION") or cls.s3_region,
            s3_skip_bucket_check=_env_bool(source, "S3_SKIP_BUCKET_CHECK"),
            max_payload_bytes=_env_int(source, "MAX_PAYLOAD_BYTES") or cls.max_payload_bytes,
            max_append_retries=_env_int(source, "MAX_APPEND_RETRIES") or cls.max_append_retries,
            retry_backoff_seconds=(
                _env_float(source, "RETRY_BACKOFF_SECONDS")
                if _env_float(source, "RETRY_BACKOFF_SECONDS") is not None
                else cls.retry_backoff_seconds
            ),
            log_level=(_env_str(source, "LOG_LEVEL") or cls.log_level).upper(),
            log_format=(_env_str(source, "LOG_FORMAT") or cls.log_format).lower(),
        )
        settings.validate()
        return settings
