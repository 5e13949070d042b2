"""Configuration for the directory synchronization engine.

This module defines the configuration shared by the scheduled jobs,
the admin API and the CLI. Values come from keyword arguments or from
ANNUAIRE_* environment variables.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from annuairesync.core.backoff import DEFAULT_MAX_RETRY_ATTEMPTS

ENV_PREFIX = "ANNUAIRE_"


def _env_seconds(env: Mapping[str, str], name: str, default: timedelta) -> timedelta:
    """Read a duration expressed in seconds from the environment."""
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    return timedelta(seconds=float(raw))


def _env_path(env: Mapping[str, str], name: str, default: Path) -> Path:
    raw = env.get(ENV_PREFIX + name)
    return Path(raw) if raw else default


@dataclass
class SyncConfig:
    """Configuration of the synchronization engine.

    Attributes:
        operator_id: Operator identifier, used in batch file names and to
            select confirmation reports.
        db_path: Path to the SQLite publication store.
        transfer_root: Root directory of the local transfer channel.
        reports_dir: Local directory where confirmation reports are kept.
        work_dir: Local directory for temporary batch files.
        registry_url: Base URL of the registry API (None disables immediate mode).
        registry_api_key: API key sent to the registry.
        registry_timeout: Registry request timeout in seconds.
        admin_token: Bearer token required by the admin API (None disables auth).
        max_retry_attempts: Attempts before a publication is marked failed.
        batch_size: Records claimed per retry run.
        retry_period: Period of the retry job.
        export_period: Period of the batch export job.
        report_period: Period of the report ingestion job.
        claim_lease: Age after which a claim is considered abandoned.
        run_timeout: Optional time box for one retry run.
        log_path: Optional log file.
    """

    operator_id: str = "UNKNOWN"
    db_path: Path = Path("annuaire.db")
    transfer_root: Path = Path("transfer")
    reports_dir: Path = Path("data/reports")
    work_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    registry_url: str | None = None
    registry_api_key: str | None = None
    registry_timeout: float = 30.0
    admin_token: str | None = None
    max_retry_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS
    batch_size: int = 50
    retry_period: timedelta = timedelta(hours=1)
    export_period: timedelta = timedelta(days=1)
    report_period: timedelta = timedelta(days=1)
    claim_lease: timedelta = timedelta(minutes=30)
    run_timeout: timedelta | None = None
    log_path: Path | None = None

    def __post_init__(self) -> None:
        """Normalize paths and validate bounds."""
        self.db_path = Path(self.db_path)
        self.transfer_root = Path(self.transfer_root)
        self.reports_dir = Path(self.reports_dir)
        self.work_dir = Path(self.work_dir)
        if self.registry_url:
            self.registry_url = self.registry_url.rstrip("/")
        if not self.operator_id:
            raise ValueError("operator_id must not be empty")
        if self.max_retry_attempts < 1:
            raise ValueError("max_retry_attempts must be >= 1")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        for name in ("retry_period", "export_period", "report_period", "claim_lease"):
            if getattr(self, name) <= timedelta(0):
                raise ValueError(f"{name} must be positive")

    @property
    def immediate_mode(self) -> bool:
        """Check if an immediate registry channel is configured."""
        return bool(self.registry_url)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> SyncConfig:
        """Build a configuration from ANNUAIRE_* environment variables.

        Args:
            env: Mapping to read from (default: os.environ).

        Returns:
            Configuration with defaults for unset variables.
        """
        env = os.environ if env is None else env
        defaults = cls()
        log_path = env.get(ENV_PREFIX + "LOG_PATH")
        run_timeout = env.get(ENV_PREFIX + "RUN_TIMEOUT")
        return cls(
            operator_id=env.get(ENV_PREFIX + "OPERATOR_ID", defaults.operator_id),
            db_path=_env_path(env, "DB_PATH", defaults.db_path),
            transfer_root=_env_path(env, "TRANSFER_ROOT", defaults.transfer_root),
            reports_dir=_env_path(env, "REPORTS_DIR", defaults.reports_dir),
            work_dir=_env_path(env, "WORK_DIR", defaults.work_dir),
            registry_url=env.get(ENV_PREFIX + "REGISTRY_URL") or None,
            registry_api_key=env.get(ENV_PREFIX + "REGISTRY_API_KEY") or None,
            registry_timeout=float(
                env.get(ENV_PREFIX + "REGISTRY_TIMEOUT", defaults.registry_timeout)
            ),
            admin_token=env.get(ENV_PREFIX + "ADMIN_TOKEN") or None,
            max_retry_attempts=int(
                env.get(ENV_PREFIX + "MAX_RETRY_ATTEMPTS", defaults.max_retry_attempts)
            ),
            batch_size=int(env.get(ENV_PREFIX + "BATCH_SIZE", defaults.batch_size)),
            retry_period=_env_seconds(env, "RETRY_PERIOD", defaults.retry_period),
            export_period=_env_seconds(env, "EXPORT_PERIOD", defaults.export_period),
            report_period=_env_seconds(env, "REPORT_PERIOD", defaults.report_period),
            claim_lease=_env_seconds(env, "CLAIM_LEASE", defaults.claim_lease),
            run_timeout=timedelta(seconds=float(run_timeout)) if run_timeout else None,
            log_path=Path(log_path) if log_path else None,
        )
