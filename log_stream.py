"""Relay of Argo workflow logs to a client as a live byte stream."""
import logging
from typing import Dict, Iterator, Optional

import requests
from pydantic import BaseModel, ConfigDict

from argo_workflows import ArgoClient
from errors import ResolutionFailure, TransportFailure

logger = logging.getLogger(__name__)

# Forwarded to Argo under logOptions.* when set.
PASSTHROUGH_OPTIONS = ("sinceTime", "sinceSeconds", "tailLines", "timestamps", "previous")


def _query_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class LogOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    follow: bool = True
    container: str = "main"
    node_id: Optional[str] = None
    pod_name: Optional[str] = None
    since_time: Optional[str] = None
    since_seconds: Optional[str] = None
    tail_lines: Optional[str] = None
    timestamps: Optional[str] = None
    previous: Optional[str] = None

    def passthrough(self) -> Dict[str, str]:
        values = (self.since_time, self.since_seconds, self.tail_lines, self.timestamps, self.previous)
        return {
            f"logOptions.{name}": _query_value(value)
            for name, value in zip(PASSTHROUGH_OPTIONS, values)
            if value is not None and value != ""
        }


class LogStream:
    """An opened upstream log response, consumed once.

    Iterating yields the upstream chunks exactly as received. Closing (or
    abandoning the iteration) releases the upstream connection.
    """

    def __init__(self, status_code: int, content_type: Optional[str],
                 response: Optional[requests.Response] = None):
        self.status_code = status_code
        self.content_type = content_type
        self._response = response

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def __iter__(self) -> Iterator[bytes]:
        if self._response is None:
            return
        try:
            for chunk in self._response.iter_content(chunk_size=None):
                if chunk:
                    yield chunk
        except requests.exceptions.RequestException as e:
            # Headers are already out; the only thing left to do is end the stream.
            logger.warning("Upstream log stream broke off: %s", e)
        finally:
            self.close()

    def close(self):
        if self._response is not None:
            self._response.close()
            self._response = None


def stream_logs(client: ArgoClient, workflow_name: str, options: LogOptions = LogOptions()) -> LogStream:
    """Open the Argo log stream for a workflow, or for one of its pods.

    ``pod_name`` wins over ``node_id``; a node that cannot be mapped to a pod
    raises ResolutionFailure before Argo's log endpoint is called. A
    non-success answer from Argo yields a bodiless LogStream carrying that
    status.
    """
    pod_name = options.pod_name
    if not pod_name and options.node_id:
        pod_name = client.resolve_pod_name(workflow_name, options.node_id)
        if not pod_name:
            raise ResolutionFailure(f"Cannot resolve pod for node {options.node_id}")

    params = {
        "logOptions.container": options.container or "main",
        "logOptions.follow": _query_value(options.follow),
    }
    if pod_name:
        params["podName"] = pod_name
    params.update(options.passthrough())

    url = f"{client.workflows_url}/{workflow_name}/log"
    logger.debug("Streaming logs for %s (pod=%s) from %s", workflow_name, pod_name, url)
    client.curl_hint(url, params=params)

    try:
        upstream = client.session.get(url, params=params, headers=client.headers(), stream=True)
    except requests.exceptions.RequestException as e:
        logger.error("Network error opening log stream for %s: %s", workflow_name, e)
        raise TransportFailure(str(e)) from e

    if not upstream.ok:
        logger.error("Argo log stream for %s answered %s", workflow_name, upstream.status_code)
        upstream.close()
        return LogStream(upstream.status_code, None)

    return LogStream(upstream.status_code, upstream.headers.get("Content-Type"), upstream)
