"""Tests for OrchestratorSettings."""

import pytest

from copy_out.core.config import OrchestratorSettings
from copy_out.core.exceptions import ConfigurationError


class TestOrchestratorSettings:
    """Tests for deployment-level settings."""

    def test_defaults(self):
        settings = OrchestratorSettings.create(working_bucket="w", deployment_region="ap-southeast-2")

        assert settings.thaw_retry_interval_seconds == 60
        assert settings.thaw_retry_max_attempts == 15
        assert settings.thaw_tolerated_failure_percentage == 100
        assert settings.copy_task_max_attempts == 3
        assert settings.copy_tolerated_failure_percentage == 25
        assert not settings.allow_write_to_installed_account

    def test_production_times(self):
        settings = OrchestratorSettings.create(working_bucket="w", deployment_region="r")
        assert settings.wait_for_writable_seconds == 600
        assert settings.job_timeout_seconds == 30 * 24 * 60 * 60

    def test_aggressive_times(self):
        settings = OrchestratorSettings.create(
            working_bucket="w", deployment_region="r", aggressive_times=True
        )
        assert settings.wait_for_writable_seconds == 30
        assert settings.job_timeout_seconds == 24 * 60 * 60

    def test_working_prefix_must_end_with_separator(self):
        """Test that a non-empty working prefix without a trailing slash is rejected."""
        with pytest.raises(ConfigurationError, match="working_prefix"):
            OrchestratorSettings.create(working_bucket="w", deployment_region="r", working_prefix="jobs")

    def test_working_prefix_with_separator_accepted(self):
        settings = OrchestratorSettings.create(
            working_bucket="w", deployment_region="r", working_prefix="jobs/"
        )
        assert settings.working_prefix == "jobs/"

    def test_zero_retries_allowed(self):
        settings = OrchestratorSettings.create(
            working_bucket="w", deployment_region="r", thaw_retry_max_attempts=0, copy_task_max_attempts=0
        )
        assert settings.thaw_retry_max_attempts == 0
        assert settings.copy_task_max_attempts == 0

    @pytest.mark.parametrize(
        "field,value",
        [("thaw_retry_max_attempts", -1), ("copy_task_max_attempts", -1),
         ("max_concurrent_thaws", 0), ("max_concurrent_batches", 0)],
    )
    def test_invalid_counts_are_configuration_errors(self, field, value):
        with pytest.raises(ConfigurationError, match=field):
            OrchestratorSettings.create(working_bucket="w", deployment_region="r", **{field: value})

    def test_percentage_out_of_range(self):
        with pytest.raises(ConfigurationError):
            OrchestratorSettings.create(
                working_bucket="w", deployment_region="r", copy_tolerated_failure_percentage=120
            )

    def test_from_env(self):
        """Test loading settings from environment variables."""
        env = {
            "COPY_OUT_WORKING_BUCKET": "working",
            "COPY_OUT_WORKING_PREFIX": "copy-out/",
            "COPY_OUT_ACCOUNT_ID": "111111111111",
            "COPY_OUT_AGGRESSIVE_TIMES": "true",
            "COPY_OUT_THAW_RETRY_MAX_ATTEMPTS": "40",
            "COPY_OUT_RCLONE_BINARY": "/usr/local/bin/rclone",
            "AWS_REGION": "us-east-1",
        }

        settings = OrchestratorSettings.from_env(env)

        assert settings.working_bucket == "working"
        assert settings.working_prefix == "copy-out/"
        assert settings.deployment_region == "us-east-1"
        assert settings.installed_account_id == "111111111111"
        assert settings.aggressive_times
        assert settings.thaw_retry_max_attempts == 40
        assert settings.rclone_binary == "/usr/local/bin/rclone"

    def test_from_env_default_region_fallback(self):
        settings = OrchestratorSettings.from_env(
            {"COPY_OUT_WORKING_BUCKET": "w", "AWS_DEFAULT_REGION": "eu-west-1"}
        )
        assert settings.deployment_region == "eu-west-1"

    def test_from_env_missing_bucket(self):
        with pytest.raises(ConfigurationError):
            OrchestratorSettings.from_env({"AWS_REGION": "us-east-1"})
