"""Factory classes for creating configured service instances."""

import threading
import time
from typing import Any, Callable, Dict, Optional

import boto3
from mypy_boto3_s3 import S3Client

from .config import OrchestratorSettings
from .logging_config import get_logger
from .observability import StructuredLogger
from .protocols import CopyTaskProtocol, S3ClientProtocol, S3ClientProvider


class S3ClientFactory:
    """Factory for creating S3 client instances."""

    @staticmethod
    def create_s3_client(region_name: Optional[str] = None, **kwargs: Any) -> S3Client:
        """Create S3 client with optional configuration."""
        session = boto3.Session(region_name=region_name)
        return session.client("s3", **kwargs)

    @staticmethod
    def client_provider(**kwargs: Any) -> S3ClientProvider:
        """
        A provider handing out one client per region.

        boto3 clients are thread-safe, so a client is shared by every worker
        that asks for the same region.
        """
        clients: Dict[str, S3ClientProtocol] = {}
        lock = threading.Lock()

        def provide(region_name: str) -> S3ClientProtocol:
            with lock:
                if region_name not in clients:
                    clients[region_name] = S3ClientFactory.create_s3_client(region_name, **kwargs)  # type: ignore[assignment]
                return clients[region_name]

        return provide


class AccountResolver:
    """Looks up the account the orchestrator runs as."""

    @staticmethod
    def current_account_id(region_name: Optional[str] = None) -> str:
        session = boto3.Session(region_name=region_name)
        return session.client("sts").get_caller_identity()["Account"]


class OrchestratorFactory:
    """Factory for wiring a complete orchestrator."""

    @staticmethod
    def create_orchestrator(
        settings: OrchestratorSettings,
        s3_client_provider: Optional[S3ClientProvider] = None,
        copy_task: Optional[CopyTaskProtocol] = None,
        logger: Optional[StructuredLogger] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Create a fully configured orchestrator; anything not injected talks to AWS or rclone."""
        # imported here to keep core free of an import cycle with services/workflow
        from ..services.copy import BatchCopyExecutor
        from ..services.permissions import PermissionValidator
        from ..services.rclone import RcloneCopyTask
        from ..workflow.orchestrator import CopyOutOrchestrator

        if s3_client_provider is None:
            s3_client_provider = S3ClientFactory.client_provider()

        if copy_task is None:
            copy_task = RcloneCopyTask(rclone_binary=settings.rclone_binary)

        installed_account_id = settings.installed_account_id
        if not installed_account_id and not settings.allow_write_to_installed_account:
            installed_account_id = AccountResolver.current_account_id(settings.deployment_region)
            get_logger("copy-out.factories").info(f"Resolved installed account {installed_account_id}")

        validator = PermissionValidator(
            s3_client_provider,
            installed_account_id=installed_account_id,
            allow_write_to_installed_account=settings.allow_write_to_installed_account,
        )

        return CopyOutOrchestrator(
            settings=settings,
            client_provider=s3_client_provider,
            permission_validator=validator,
            copy_executor=BatchCopyExecutor(copy_task),
            logger=logger,
            clock=clock,
            sleep=sleep,
        )
