"""
Workflow Router
===============

Implements:
- POST /public/test/run - Trigger the external test workflow (bearer token required)
"""

import logging

from fastapi import APIRouter, Depends, Response, status
from fastapi.concurrency import run_in_threadpool

from api.workflow import WorkflowDispatcher, WorkflowDispatchError

from ..auth import require_bearer_token
from ..dependencies import get_dispatcher
from ..exceptions import UpstreamError
from ..schemas import WorkflowRunRequest

_logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public/test", tags=["workflow"])


@router.post(
    "/run",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    dependencies=[Depends(require_bearer_token)],
)
async def trigger_test_workflow(
    body: WorkflowRunRequest,
    dispatcher: WorkflowDispatcher = Depends(get_dispatcher),
):
    """
    Dispatch the test workflow with the given parameters.

    Success only means GitHub accepted the dispatch; the triggered run's own
    outcome is not tracked.

    Raises:
        401: If the bearer token is missing or wrong
        500: If the dispatch call failed
    """
    params = body.model_dump(by_alias=True)
    try:
        await run_in_threadpool(dispatcher.dispatch, params)
    except WorkflowDispatchError as e:
        raise UpstreamError(f"Failed to trigger workflow: {e}", service="github") from e

    _logger.info("Workflow triggered (ref=%s)", body.ref)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
