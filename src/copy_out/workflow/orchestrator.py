"""The copy-out job: defaults, permission check, thaw, copy and summary."""

import time
import uuid
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from ..core.config import OrchestratorSettings
from ..core.error_handling import RetryPolicy
from ..core.exceptions import (
    AccessDeniedError,
    CopyNotSucceededError,
    InvalidJobInputError,
    IsThawingError,
    MalformedManifestError,
    TaskFailureError,
    ToleratedFailureExceededError,
    WrongRegionError,
)
from ..core.models import (
    FailureReason,
    JobDefaults,
    JobInput,
    JobOutcome,
    JobParameters,
    JobStatus,
    ResultWriterDetails,
    apply_defaults,
)
from ..core.observability import LogContext, MetricsCollector, StructuredLogger
from ..core.protocols import ArtifactStore, S3ClientProvider
from ..core.storage import S3ArtifactStore, join_key
from ..services.copy import BatchCopyExecutor
from ..services.manifest import ManifestReader, partition_rows
from ..services.permissions import PermissionValidator
from ..services.results import ResultWriter
from ..services.summarise import ResultSummarizer, format_report
from ..services.thaw import ThawCoordinator
from .engine import ExecutionResult, WorkflowEngine
from .fanout import DistributedMap
from .states import (
    CatchPolicy,
    ExecutionContext,
    StateDefinition,
    StateKind,
    StateName,
    build_transition_table,
)
from .timers import ExecutionTimer

INPUT_ARTIFACT_NAME = "input.json"


class CopyOutOrchestrator:
    """
    Runs copy-out jobs end to end.

    Each `run` is one execution of the state machine
    DefineDefaults -> ApplyDefaults -> CanWrite <-> WaitForWritable ->
    ThawAll -> CopyAll -> Summarise -> Succeed, with Fail reachable from
    any state that can raise a fatal error.
    """

    def __init__(
        self,
        settings: OrchestratorSettings,
        client_provider: S3ClientProvider,
        permission_validator: PermissionValidator,
        copy_executor: BatchCopyExecutor,
        working_store: Optional[ArtifactStore] = None,
        logger: Optional[StructuredLogger] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self._client_provider = client_provider
        self._working_client = client_provider(settings.deployment_region)
        self._working_store = working_store or S3ArtifactStore(
            self._working_client, settings.working_bucket
        )
        self._permission_validator = permission_validator
        self._copy_executor = copy_executor
        self._logger = logger or StructuredLogger("copy-out.orchestrator")
        self._clock = clock
        self._sleep = sleep
        self.metrics = MetricsCollector()

    def build_states(self, timer: ExecutionTimer) -> Dict[StateName, StateDefinition]:
        settings = self.settings
        to_fail = StateName.FAIL

        def on(errors, reason):
            return CatchPolicy(errors=errors, next_state=to_fail, reason=reason)

        return build_transition_table([
            StateDefinition(
                name=StateName.DEFINE_DEFAULTS,
                kind=StateKind.TASK,
                handler=self._define_defaults,
                next_state=StateName.APPLY_DEFAULTS,
            ),
            StateDefinition(
                name=StateName.APPLY_DEFAULTS,
                kind=StateKind.TASK,
                handler=self._apply_defaults,
                next_state=StateName.CAN_WRITE,
                catch=(on((InvalidJobInputError,), FailureReason.INVALID_INPUT),),
            ),
            StateDefinition(
                name=StateName.CAN_WRITE,
                kind=StateKind.TASK,
                handler=self._can_write,
                next_state=StateName.THAW_ALL,
                catch=(
                    CatchPolicy(errors=(AccessDeniedError,), next_state=StateName.WAIT_FOR_WRITABLE),
                    on((WrongRegionError,), FailureReason.WRONG_REGION),
                ),
            ),
            StateDefinition(
                name=StateName.WAIT_FOR_WRITABLE,
                kind=StateKind.WAIT,
                next_state=StateName.CAN_WRITE,
                wait_seconds=settings.wait_for_writable_seconds,
            ),
            StateDefinition(
                name=StateName.THAW_ALL,
                kind=StateKind.TASK,
                handler=lambda ctx: self._thaw_all(ctx, timer),
                next_state=StateName.COPY_ALL,
                catch=(
                    on((InvalidJobInputError, MalformedManifestError), FailureReason.INVALID_INPUT),
                    on((ToleratedFailureExceededError,), FailureReason.EXCEEDED_FAILURE_TOLERANCE),
                ),
            ),
            StateDefinition(
                name=StateName.COPY_ALL,
                kind=StateKind.TASK,
                handler=lambda ctx: self._copy_all(ctx, timer),
                next_state=StateName.SUMMARISE,
                catch=(on((ToleratedFailureExceededError,), FailureReason.EXCEEDED_FAILURE_TOLERANCE),),
            ),
            StateDefinition(
                name=StateName.SUMMARISE,
                kind=StateKind.TASK,
                handler=self._summarise,
                next_state=StateName.SUCCEED,
                catch=(on((CopyNotSucceededError,), FailureReason.COPY_FAILED),),
            ),
            StateDefinition(name=StateName.SUCCEED, kind=StateKind.SUCCEED),
            StateDefinition(name=StateName.FAIL, kind=StateKind.FAIL),
        ])

    def run(
        self,
        job_input: Union[JobInput, Dict[str, Any]],
        execution_id: Optional[str] = None,
    ) -> JobOutcome:
        execution_id = execution_id or uuid.uuid4().hex

        timer = ExecutionTimer(self.settings.job_timeout_seconds, clock=self._clock, sleep=self._sleep)
        engine = WorkflowEngine(
            self.build_states(timer),
            start_at=StateName.DEFINE_DEFAULTS,
            logger=self._logger,
            metrics=self.metrics,
        )
        context = ExecutionContext(execution_id=execution_id, job_input=job_input)

        self._logger.info("Starting copy-out job", LogContext(correlation_id=execution_id))
        result = engine.run(context, timer)
        self._logger.info(
            "State visits",
            LogContext(correlation_id=execution_id),
            **{state: summary["total_visits"] for state, summary in self.metrics.by_state().items()},
        )
        return self._outcome(result)

    def _log_context(self, ctx: ExecutionContext, state: StateName) -> LogContext:
        return LogContext(correlation_id=ctx.execution_id, operation=state.value, component="orchestrator")

    def _define_defaults(self, ctx: ExecutionContext) -> None:
        ctx.defaults = JobDefaults(required_region=self.settings.deployment_region)

    def _apply_defaults(self, ctx: ExecutionContext) -> None:
        defaults: JobDefaults = ctx.require("defaults")
        job_input = ctx.job_input
        if not isinstance(job_input, JobInput):
            try:
                job_input = JobInput.model_validate(job_input)
            except ValidationError as e:
                raise InvalidJobInputError(f"Invalid job input: {e}") from e
        params = apply_defaults(defaults, job_input)
        ctx.params = params

        key = join_key(
            self._working_area(params.source_files_csv_key),
            f"{ctx.execution_id}/{INPUT_ARTIFACT_NAME}",
        )
        self._working_store.put_json(key, params.model_dump(by_alias=True))
        self._logger.info(
            f"Effective job input written to s3://{self.settings.working_bucket}/{key}",
            self._log_context(ctx, StateName.APPLY_DEFAULTS),
        )

    def _can_write(self, ctx: ExecutionContext) -> None:
        params: JobParameters = ctx.require("params")
        ctx.start_marker_key = self._permission_validator.check_can_write(
            params.required_region,
            params.destination_bucket,
            params.destination_prefix_key,
            params.destination_start_copy_relative_key,
        )

    def _thaw_all(self, ctx: ExecutionContext, timer: ExecutionTimer) -> None:
        params: JobParameters = ctx.require("params")
        reader = ManifestReader(self._working_client)
        ctx.rows = reader.read(params.source_files_csv_bucket, params.source_files_csv_key)

        coordinator = ThawCoordinator(self._client_provider(self.settings.deployment_region))
        thaw_map = DistributedMap(
            name=StateName.THAW_ALL.value,
            processor=coordinator.thaw,
            retry_policies=(
                RetryPolicy(
                    errors=(IsThawingError,),
                    interval_seconds=self.settings.thaw_retry_interval_seconds,
                    max_attempts=self.settings.thaw_retry_max_attempts,
                    backoff_rate=1.0,
                ),
            ),
            tolerated_failure_percentage=self.settings.thaw_tolerated_failure_percentage,
            max_concurrency=self.settings.max_concurrent_thaws,
            deadline_check=timer.check,
            sleep=timer.sleep,
        )
        result = thaw_map.run(ctx.rows)
        if result.failed:
            # still-archived rows surface as copy errors later
            self._logger.warning(
                f"{result.failed} of {len(ctx.rows)} rows were not confirmed readable",
                self._log_context(ctx, StateName.THAW_ALL),
            )

    def _copy_all(self, ctx: ExecutionContext, timer: ExecutionTimer) -> None:
        params: JobParameters = ctx.require("params")
        ctx.batches = partition_rows(ctx.rows, params.max_items_per_batch)

        writer = ResultWriter(
            self._working_store,
            bucket=self.settings.working_bucket,
            prefix=self._working_area(params.source_files_csv_key) + "/",
        )
        copy_map = DistributedMap(
            name=StateName.COPY_ALL.value,
            processor=lambda batch: self._copy_executor.execute(batch, params),
            retry_policies=(
                RetryPolicy(
                    errors=(TaskFailureError,),
                    interval_seconds=0.0,
                    max_attempts=self.settings.copy_task_max_attempts,
                ),
            ),
            tolerated_failure_percentage=self.settings.copy_tolerated_failure_percentage,
            max_concurrency=self.settings.max_concurrent_batches,
            sleep=timer.sleep,
            deadline_check=timer.check,
            item_name=lambda batch: f"batch {batch.index}",
            result_writer=writer,
        )
        result = copy_map.run(
            ctx.batches,
            map_run_id=f"{ctx.execution_id}-copy",
            destination_bucket=params.destination_bucket,
        )
        ctx.result_writer_details = result.result_writer_details

    def _summarise(self, ctx: ExecutionContext) -> None:
        params: JobParameters = ctx.require("params")
        details: ResultWriterDetails = ctx.require("result_writer_details")
        ctx.summary = ResultSummarizer(self._working_client).summarise(details)

        destination = S3ArtifactStore(
            self._client_provider(params.required_region), params.destination_bucket
        )
        end_key = join_key(params.destination_prefix_key, params.destination_end_copy_relative_key)
        destination.put_text(end_key, format_report(ctx.summary), content_type="text/csv")
        self._logger.info(
            f"Copy report written to s3://{params.destination_bucket}/{end_key}",
            self._log_context(ctx, StateName.SUMMARISE),
            objects=len(ctx.summary),
        )

    def _working_area(self, manifest_key: str) -> str:
        return f"{self.settings.working_prefix}{manifest_key}"

    def _outcome(self, result: ExecutionResult) -> JobOutcome:
        history = [s.value for s in result.history]
        if result.succeeded:
            return JobOutcome(
                execution_id=result.context.execution_id,
                status=JobStatus.SUCCEEDED,
                summary=result.context.summary,
                history=history,
            )
        return JobOutcome(
            execution_id=result.context.execution_id,
            status=JobStatus.FAILED,
            reason=result.reason,
            error=str(result.error) if result.error else "",
            history=history,
        )
