"""Deployment-level settings for the copy-out orchestrator."""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigurationError

AGGRESSIVE_WAIT_FOR_WRITABLE_SECONDS = 30
WAIT_FOR_WRITABLE_SECONDS = 10 * 60
AGGRESSIVE_JOB_TIMEOUT_SECONDS = 24 * 60 * 60
JOB_TIMEOUT_SECONDS = 30 * 24 * 60 * 60

_ENV_PREFIX = "COPY_OUT_"
_TRUE_VALUES = ("1", "true", "yes", "on")


class OrchestratorSettings(BaseModel):
    """
    Settings fixed for an installation, as opposed to per-job parameters.

    `aggressive_times` swaps production waits/timeouts for ones suited to
    development; `allow_write_to_installed_account` lifts the restriction that
    stops the permission check from succeeding against our own account.
    """

    model_config = ConfigDict(frozen=True)

    working_bucket: str = Field(min_length=1)
    working_prefix: str = ""
    deployment_region: str = Field(min_length=1)
    installed_account_id: str = ""
    aggressive_times: bool = False
    allow_write_to_installed_account: bool = False

    thaw_retry_interval_seconds: float = Field(default=60.0, ge=0)
    thaw_retry_max_attempts: int = Field(default=15, ge=0)
    thaw_tolerated_failure_percentage: float = Field(default=100.0, ge=0, le=100)
    max_concurrent_thaws: int = Field(default=20, gt=0)

    copy_task_max_attempts: int = Field(default=3, ge=0)
    copy_tolerated_failure_percentage: float = Field(default=25.0, ge=0, le=100)
    max_concurrent_batches: int = Field(default=10, gt=0)

    rclone_binary: str = "rclone"

    @field_validator("working_prefix")
    @classmethod
    def _prefix_ends_with_separator(cls, value: str) -> str:
        if value and not value.endswith("/"):
            raise ValueError(f"working_prefix {value!r} must end with '/'")
        return value

    @property
    def wait_for_writable_seconds(self) -> int:
        if self.aggressive_times:
            return AGGRESSIVE_WAIT_FOR_WRITABLE_SECONDS
        return WAIT_FOR_WRITABLE_SECONDS

    @property
    def job_timeout_seconds(self) -> int:
        if self.aggressive_times:
            return AGGRESSIVE_JOB_TIMEOUT_SECONDS
        return JOB_TIMEOUT_SECONDS

    @classmethod
    def create(cls, **values) -> "OrchestratorSettings":
        """Build settings, reporting any invalid value as a ConfigurationError."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid orchestrator settings: {e}") from e

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "OrchestratorSettings":
        """
        Load settings from the environment.

        Environment Variables:
            COPY_OUT_WORKING_BUCKET (required), COPY_OUT_WORKING_PREFIX,
            COPY_OUT_ACCOUNT_ID, COPY_OUT_AGGRESSIVE_TIMES,
            COPY_OUT_ALLOW_WRITE_TO_INSTALLED_ACCOUNT,
            COPY_OUT_THAW_RETRY_INTERVAL_SECONDS, COPY_OUT_THAW_RETRY_MAX_ATTEMPTS,
            COPY_OUT_COPY_TASK_MAX_ATTEMPTS, COPY_OUT_MAX_CONCURRENT_THAWS,
            COPY_OUT_MAX_CONCURRENT_BATCHES, COPY_OUT_RCLONE_BINARY,
            AWS_REGION / AWS_DEFAULT_REGION for the deployment region.
        """
        env = os.environ if environ is None else environ

        values = {
            "working_bucket": env.get(f"{_ENV_PREFIX}WORKING_BUCKET", ""),
            "working_prefix": env.get(f"{_ENV_PREFIX}WORKING_PREFIX", ""),
            "deployment_region": env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION", ""),
            "installed_account_id": env.get(f"{_ENV_PREFIX}ACCOUNT_ID", ""),
            "aggressive_times": env.get(f"{_ENV_PREFIX}AGGRESSIVE_TIMES", "").lower() in _TRUE_VALUES,
            "allow_write_to_installed_account": env.get(
                f"{_ENV_PREFIX}ALLOW_WRITE_TO_INSTALLED_ACCOUNT", ""
            ).lower()
            in _TRUE_VALUES,
        }

        optional = {
            "thaw_retry_interval_seconds": "THAW_RETRY_INTERVAL_SECONDS",
            "thaw_retry_max_attempts": "THAW_RETRY_MAX_ATTEMPTS",
            "copy_task_max_attempts": "COPY_TASK_MAX_ATTEMPTS",
            "max_concurrent_thaws": "MAX_CONCURRENT_THAWS",
            "max_concurrent_batches": "MAX_CONCURRENT_BATCHES",
            "rclone_binary": "RCLONE_BINARY",
        }
        for field_name, suffix in optional.items():
            raw = env.get(f"{_ENV_PREFIX}{suffix}")
            if raw:
                values[field_name] = raw

        return cls.create(**values)
