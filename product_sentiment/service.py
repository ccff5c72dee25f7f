"""
Run submission and status lookup on top of the Temporal client.

Run state lives only in Temporal, keyed by workflow ID (= run ID). There is
no in-process result cache: every status lookup describes the workflow
execution and, for finished runs, reads its result from the server.
"""

import logging
from typing import Optional

from temporalio.client import (
    Client,
    WorkflowExecutionStatus,
    WorkflowFailureError,
    WorkflowHandle,
)
from temporalio.common import WorkflowIDReusePolicy
from temporalio.exceptions import FailureError, WorkflowAlreadyStartedError
from temporalio.service import RPCError, RPCStatusCode

from product_sentiment.config import DEFAULT_TASK_QUEUE
from product_sentiment.workflows import ProductSentiment
from product_sentiment.models import (
    STATUS_COMPLETE,
    STATUS_ERROR,
    STATUS_NOT_FOUND,
    STATUS_RUNNING,
    Report,
    RunStatus,
    SentimentReportInput,
)

logger = logging.getLogger(__name__)


class RunService:
    """
    Starts sentiment runs and reports their status by run ID.

    Submissions are idempotent per run ID: the workflow ID is the run ID and
    duplicate IDs are rejected by the server, in which case the existing
    execution's handle is returned instead of starting a second one.
    """

    def __init__(self, client: Client, task_queue: str = DEFAULT_TASK_QUEUE) -> None:
        """
        Args:
            client: Connected Temporal client
            task_queue: Task queue the worker polls
        """
        self.client = client
        self.task_queue = task_queue

    def get_handle(self, run_id: str) -> WorkflowHandle:
        """Typed handle for an existing run."""
        return self.client.get_workflow_handle_for(ProductSentiment.run, run_id)

    async def start_run(self, request: SentimentReportInput) -> WorkflowHandle:
        """
        Submit a run, or attach to it if the run ID was already submitted.

        Args:
            request: Run parameters (one of input_url/product_id is required)

        Returns:
            Handle for the (single) execution of this run ID

        Raises:
            ValueError: If neither an input URL nor a product ID is given
        """
        if not request.input_url and not request.product_id:
            raise ValueError("Either input_url or product_id is required")

        try:
            handle = await self.client.start_workflow(
                ProductSentiment.run,
                request,
                id=request.run_id,
                task_queue=self.task_queue,
                id_reuse_policy=WorkflowIDReusePolicy.REJECT_DUPLICATE,
            )
            logger.info("Started run %s on task queue %s", request.run_id, self.task_queue)
            return handle
        except WorkflowAlreadyStartedError:
            logger.info("Run %s already submitted, attaching to existing execution", request.run_id)
            return self.get_handle(request.run_id)

    async def describe(self, run_id: str) -> RunStatus:
        """
        Report the current status of a run.

        Returns:
            RunStatus with:
                - running: no data
                - complete: data set to the Report
                - error: message from the failed workflow
                - not_found: no run with this ID
        """
        handle = self.get_handle(run_id)

        try:
            description = await handle.describe()
        except RPCError as e:
            if e.status == RPCStatusCode.NOT_FOUND:
                return RunStatus(status=STATUS_NOT_FOUND, message="No run found for this runId")
            raise

        status = description.status
        logger.debug("Run %s status: %s", run_id, status.name if status else None)

        if status == WorkflowExecutionStatus.RUNNING:
            return RunStatus(status=STATUS_RUNNING, message="Analysis in progress")

        if status == WorkflowExecutionStatus.COMPLETED:
            report = await handle.result()
            return RunStatus(status=STATUS_COMPLETE, data=report)

        if status == WorkflowExecutionStatus.FAILED:
            return RunStatus(status=STATUS_ERROR, message=await self._failure_message(handle))

        # CANCELED, TERMINATED, TIMED_OUT, CONTINUED_AS_NEW
        status_name = status.name if status else "UNKNOWN"
        return RunStatus(status=STATUS_ERROR, message=f"Run ended with status: {status_name}")

    async def await_result(self, run_id: str) -> Report:
        """
        Wait for a run to finish and return its report.

        Raises:
            WorkflowFailureError: If the run failed
        """
        return await self.get_handle(run_id).result()

    async def _failure_message(self, handle: WorkflowHandle) -> str:
        try:
            await handle.result()
        except WorkflowFailureError as e:
            return failure_message(e)
        return "Workflow failed"


def failure_message(error: WorkflowFailureError) -> str:
    """Human-readable message for a failed run."""
    cause: Optional[BaseException] = error.cause
    if isinstance(cause, FailureError):
        return cause.message
    return str(error)
