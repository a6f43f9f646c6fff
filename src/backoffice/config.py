"""Runtime settings for the backoffice service, read from the environment."""

import os
from dataclasses import dataclass

REPOSITORY_BACKENDS = ("memory", "sql")


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


@dataclass(frozen=True)
class Settings:
    repository: str = "memory"
    database_uri: str = "sqlite://"
    repository_timeout: float = 5.0
    batch_workers: int = 4
    conflict_retries: int = 0
    environment: str = "development"

    def __post_init__(self):
        if self.repository not in REPOSITORY_BACKENDS:
            raise ValueError(f"BACKOFFICE_REPOSITORY must be one of {REPOSITORY_BACKENDS}, got {self.repository!r}")
        if self.repository_timeout <= 0:
            raise ValueError("BACKOFFICE_REPOSITORY_TIMEOUT must be positive")
        if self.batch_workers < 1:
            raise ValueError("BACKOFFICE_BATCH_WORKERS must be at least 1")
        if self.conflict_retries < 0:
            raise ValueError("BACKOFFICE_CONFLICT_RETRIES cannot be negative")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            repository=os.getenv("BACKOFFICE_REPOSITORY", "memory").lower(),
            database_uri=os.getenv("BACKOFFICE_DATABASE_URI", "sqlite://"),
            repository_timeout=_float("BACKOFFICE_REPOSITORY_TIMEOUT", 5.0),
            batch_workers=_int("BACKOFFICE_BATCH_WORKERS", 4),
            conflict_retries=_int("BACKOFFICE_CONFLICT_RETRIES", 0),
            environment=os.getenv("PROTEAN_ENV", "development").lower(),
        )
