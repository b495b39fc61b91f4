"""Client for the Argo Workflows server REST API.

Every call round-trips to Argo; nothing is cached between requests. The only
state an ``ArgoClient`` holds is its settings and a shared HTTP session.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import requests

from errors import TransportFailure, UpstreamError
from settings import Settings
from workflow_records import as_mapping, find_pod_name, next_cursor, slim_workflow, sort_workflows

logger = logging.getLogger(__name__)

CONTENT_TYPE_JSON = "application/json"
CURL_BODY_LIMIT = 1000


def compact_value(value):
    """Re-serialise JSON-looking strings without whitespace; leave anything else alone."""
    if not isinstance(value, str):
        return value
    trimmed = value.strip()
    if not trimmed.startswith(("{", "[")):
        return value
    try:
        return json.dumps(json.loads(trimmed), separators=(",", ":"))
    except ValueError:
        return value


class ArgoClient:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()
        self.session.verify = not settings.insecure

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    @property
    def workflows_url(self) -> str:
        return f"{self.settings.argo_url}/api/v1/workflows/{self.settings.namespace}"

    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": CONTENT_TYPE_JSON}
        if self.settings.token:
            headers["Authorization"] = f"Bearer {self.settings.token}"
        return headers

    def curl_hint(self, url: str, method: str = "GET", body: Optional[Any] = None, params=None):
        """Log a ready-to-copy curl command for the call about to be made."""
        if not self.settings.debug:
            return
        if params:
            url = requests.Request(method, url, params=params).prepare().url
        data = ""
        if body is not None:
            text = json.dumps(body)
            if len(text) > CURL_BODY_LIMIT:
                text = text[:CURL_BODY_LIMIT] + "...(truncated)"
            data = f"--data '{text}' "
        logger.debug(
            "test-curl:\ncurl -k -H \"Authorization: Bearer $(cat %s)\" "
            "-H \"Content-Type: %s\" -X %s %s\"%s\"",
            self.settings.token_path, CONTENT_TYPE_JSON, method, data, url,
        )

    def request(self, method: str, url: str, *, params=None, json_body=None,
                stream: bool = False) -> requests.Response:
        """Send one upstream request; non-success statuses raise UpstreamError."""
        self.curl_hint(url, method, json_body, params)
        try:
            response = self.session.request(
                method, url, params=params, json=json_body,
                headers=self.headers(), stream=stream,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Network error calling Argo %s %s: %s", method, url, e)
            raise TransportFailure(f"Network error calling Argo: {e}") from e

        if not response.ok:
            logger.error("Argo %s %s answered %s", method, url, response.status_code)
            response.close()
            raise UpstreamError(response.status_code)
        return response

    @staticmethod
    def decode(response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise TransportFailure(f"Argo returned an undecodable body: {e}") from e
        if not isinstance(body, dict):
            raise TransportFailure("Argo returned a non-object body")
        return body

    # ------------------------------------------------------------------
    # listing
    # ------------------------------------------------------------------

    def fetch_page(self, limit: int, cursor: str = "") -> Dict[str, Any]:
        """Fetch, slim and sort one page of workflows.

        The cursor is forwarded untouched as ``listOptions.continue`` and
        omitted entirely for the first page.
        """
        params = {
            "listOptions.fieldSelector": "",
            "listOptions.limit": str(max(1, int(limit))),
        }
        if cursor:
            params["listOptions.continue"] = cursor

        logger.debug("Fetching workflows from %s (limit=%s, cursor=%r)", self.workflows_url, limit, cursor)
        body = self.decode(self.request("GET", self.workflows_url, params=params))

        raw_items = body.get("items")
        if not isinstance(raw_items, list):
            raw_items = []
        items = [slim_workflow(item, self.settings.include_nodes) for item in raw_items]
        sort_workflows(items)

        logger.debug("Sorted %d workflows by template and start time", len(items))
        return {"items": items, "nextCursor": next_cursor(body)}

    def list_workflows(self, limit: Optional[int] = None, cursor: Optional[str] = None) -> Dict[str, Any]:
        """One page of workflows. Callers wanting everything follow ``nextCursor`` until it is None."""
        return self.fetch_page(limit or self.settings.page_size, cursor or "")

    # ------------------------------------------------------------------
    # single workflows
    # ------------------------------------------------------------------

    def get_workflow(self, name: str) -> Dict[str, Any]:
        return self.decode(self.request("GET", f"{self.workflows_url}/{name}"))

    def resolve_pod_name(self, workflow_name: str, node_id: str) -> Optional[str]:
        workflow = self.get_workflow(workflow_name)
        nodes = as_mapping(as_mapping(workflow.get("status")).get("nodes"))
        pod_name = find_pod_name(workflow_name, nodes, node_id)
        logger.debug("Resolved node %s of %s to pod %s", node_id, workflow_name, pod_name)
        return pod_name

    def delete_workflow(self, name: str) -> Dict[str, bool]:
        logger.debug("Deleting workflow %s", name)
        self.request("DELETE", f"{self.workflows_url}/{name}").close()
        logger.info("Deleted workflow %s", name)
        return {"deleted": True}

    # ------------------------------------------------------------------
    # templates
    # ------------------------------------------------------------------

    def list_templates(self) -> List[Dict[str, Any]]:
        url = f"{self.settings.argo_url}/api/v1/workflow-templates/{self.settings.namespace}"
        logger.debug("Fetching templates from %s", url)
        items = self.decode(self.request("GET", url)).get("items")
        if not isinstance(items, list):
            items = []
        logger.debug("Retrieved %d templates", len(items))
        return items

    def submit_workflow(self, template: str, parameters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Start a run of ``template`` through Argo's submit endpoint."""
        param_strings = [f"{name}={compact_value(value)}" for name, value in (parameters or {}).items()]

        submit_options = {"generateName": f"{template}-"}
        if param_strings:
            submit_options["parameters"] = param_strings
        body = {
            "resourceKind": "WorkflowTemplate",
            "resourceName": template,
            "submitOptions": submit_options,
        }

        logger.debug(
            "Submitting workflowTemplate %s %s", template,
            f"with {len(param_strings)} parameters" if param_strings else "(no parameters)",
        )
        result = self.decode(self.request("POST", f"{self.workflows_url}/submit", json_body=body))
        logger.info("Submitted workflow %s", (result.get("metadata") or {}).get("name"))
        return result
