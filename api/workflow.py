"""
Workflow Trigger
================

Dispatches the end-to-end test workflow on GitHub Actions.

The request-side parameter names (camelCase, as sent by the dashboard) are
remapped to the snake_case ``inputs`` the workflow file declares. The call is
fire-and-forget: one POST, no retry, no polling of the triggered run.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping

import requests

_logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"

WORKFLOW_OWNER = "test-tracker"
WORKFLOW_REPO = "e2e-tests"
WORKFLOW_ID = "run-tests.yml"

DISPATCH_TIMEOUT_SECONDS = 15
DEFAULT_REF = "main"

# request field -> workflow_dispatch input
INPUT_NAME_MAP: dict[str, str] = {
    "testName": "test_name",
    "testSuite": "test_suite",
    "extraArgs": "extra_args",
}


class WorkflowDispatchError(Exception):
    """The workflow dispatch call failed or could not be made."""


def build_dispatch_payload(params: Mapping[str, Any]) -> dict[str, Any]:
    """
    Build the ``workflow_dispatch`` request body.

    ``ref`` is lifted out to the top level; every other parameter becomes a
    string input under its workflow name. ``None`` values are dropped.
    """
    inputs: dict[str, str] = {}
    for key, value in params.items():
        if key == "ref" or value is None:
            continue
        inputs[INPUT_NAME_MAP.get(key, key)] = str(value)
    return {"ref": params.get("ref") or DEFAULT_REF, "inputs": inputs}


def dispatch_url(owner: str = WORKFLOW_OWNER, repo: str = WORKFLOW_REPO, workflow_id: str = WORKFLOW_ID) -> str:
    return f"{GITHUB_API_URL}/repos/{owner}/{repo}/actions/workflows/{workflow_id}/dispatches"


class WorkflowDispatcher:
    """Issues ``workflow_dispatch`` events against the hard-coded workflow."""

    def __init__(self, token: str | None, session: requests.Session | None = None):
        self.token = token
        self.session = session or requests.Session()

    def dispatch(self, params: Mapping[str, Any]) -> None:
        """
        Trigger one workflow run.

        Raises:
            WorkflowDispatchError: missing token, transport error, or non-2xx reply
        """
        if not self.token:
            raise WorkflowDispatchError("GITHUB_TOKEN is not configured")

        payload = build_dispatch_payload(params)
        url = dispatch_url()
        _logger.info("Dispatching workflow %s on ref %s", WORKFLOW_ID, payload["ref"])

        try:
            response = self.session.post(
                url,
                json=payload,
                headers={
                    "Accept": "application/vnd.github+json",
                    "Authorization": f"Bearer {self.token}",
                    "X-GitHub-Api-Version": GITHUB_API_VERSION,
                },
                timeout=DISPATCH_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            _logger.error("Workflow dispatch request failed: %s", e)
            raise WorkflowDispatchError(f"Workflow dispatch request failed: {e}") from e

        if not response.ok:
            _logger.error(
                "Workflow dispatch rejected: status=%s body=%s",
                response.status_code, response.text[:500]
            )
            raise WorkflowDispatchError(
                f"Workflow dispatch rejected with status {response.status_code}"
            )
