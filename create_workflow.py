"""Ways of starting a new workflow run from the dashboard.

``CREATE_MODE`` picks the sink: Argo's submit endpoint, an Argo Events
webhook, or a Workflow object created directly through the Kubernetes API.
"""
import json
import logging
import os
from typing import Any, Dict

import requests
from kubernetes import client, config

from argo_workflows import ArgoClient, compact_value
from errors import TransportFailure, UpstreamError
from settings import Settings

logger = logging.getLogger(__name__)

ARGO_GROUP = "argoproj.io"
ARGO_VERSION = "v1alpha1"


def _resource_name(body: Dict[str, Any]) -> str:
    name = body.get("resourceName") or body.get("template")
    if not name:
        raise ValueError("Missing resourceName/template")
    return name


# ----------------------------------------------------------------------
# Argo Events webhook
# ----------------------------------------------------------------------

def event_url(settings: Settings, name: str) -> str:
    service = f"{name}{settings.events_svc_suffix}.{settings.namespace}.svc.cluster.local"
    path = settings.events_path if settings.events_path.startswith("/") else f"/{settings.events_path}"
    return f"{settings.events_scheme}://{service}:{settings.events_port}{path}"


def event_payload(parameters: Dict[str, Any]):
    """Return (json_object, text) for the webhook; exactly one is not None.

    An ``event-data`` parameter is sent as the whole event; otherwise every
    parameter becomes a string field of a JSON object.
    """
    if "event-data" in parameters:
        raw = parameters["event-data"]
        if isinstance(raw, str):
            try:
                return json.loads(compact_value(raw)), None
            except ValueError:
                return None, raw
        if isinstance(raw, (dict, list)):
            return raw, None
        return None, "" if raw is None else str(raw)

    return {
        key: value if isinstance(value, str) else ("" if value is None else str(value))
        for key, value in parameters.items()
    }, None


def create_via_events(settings: Settings, body: Dict[str, Any], session=None) -> Dict[str, Any]:
    name = _resource_name(body)
    payload, text = event_payload(body.get("parameters") or {})
    url = event_url(settings, name)
    session = session or requests

    logger.debug("Posting to Argo Events webhook: %s (resourceName=%s)", url, name)
    try:
        if payload is not None:
            response = session.post(url, json=payload)
        else:
            response = session.post(url, data=text.encode("utf-8"), headers={"Content-Type": "text/plain"})
    except requests.exceptions.RequestException as e:
        raise TransportFailure(f"Event webhook unreachable: {e}") from e

    if not response.ok:
        raise UpstreamError(response.status_code, f"Event webhook {response.status_code}")
    return {"accepted": True, "status": response.status_code}


# ----------------------------------------------------------------------
# Kubernetes API
# ----------------------------------------------------------------------

def to_args_parameters(parameters: Dict[str, Any]):
    return [
        {
            "name": name,
            "value": value if isinstance(value, str) else ("" if value is None else json.dumps(value)),
        }
        for name, value in parameters.items()
    ]


def k8s_api(settings: Settings) -> client.CustomObjectsApi:
    """CustomObjectsApi against the configured API server.

    With a bearer token the connection is configured explicitly; without one
    the in-cluster service account is used, then the local kubeconfig.
    """
    if settings.token:
        configuration = client.Configuration()
        configuration.host = settings.k8s_api_url
        configuration.api_key = {"authorization": settings.token}
        configuration.api_key_prefix = {"authorization": "Bearer"}
        if os.path.exists(settings.k8s_ca_path):
            logger.debug("K8s: using cluster CA at %s", settings.k8s_ca_path)
            configuration.ssl_ca_cert = settings.k8s_ca_path
        elif settings.k8s_insecure:
            logger.debug("K8s: INSECURE skip TLS verify")
            configuration.verify_ssl = False
        return client.CustomObjectsApi(client.ApiClient(configuration))

    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()
    return client.CustomObjectsApi()


def create_via_k8s(settings: Settings, body: Dict[str, Any], api=None) -> Dict[str, Any]:
    name = _resource_name(body)
    workflow = {
        "apiVersion": f"{ARGO_GROUP}/{ARGO_VERSION}",
        "kind": "Workflow",
        "metadata": {"generateName": f"{name}-"},
        "spec": {
            "workflowTemplateRef": {"name": name},
            "arguments": {"parameters": to_args_parameters(body.get("parameters") or {})},
        },
    }

    api = api or k8s_api(settings)
    logger.debug("K8s: creating Workflow from template %s in %s", name, settings.namespace)
    try:
        created = api.create_namespaced_custom_object(
            group=ARGO_GROUP, version=ARGO_VERSION, namespace=settings.namespace,
            plural="workflows", body=workflow)
    except client.ApiException as e:
        logger.error("K8s create failed: %s %s", e.status, e.reason)
        raise UpstreamError(e.status or 500, f"K8s create {e.status}: {e.reason}") from e

    return {"created": True, "name": (created or {}).get("metadata", {}).get("name")}


# ----------------------------------------------------------------------
# dispatch
# ----------------------------------------------------------------------

def create_workflow(argo: ArgoClient, body: Dict[str, Any]) -> Dict[str, Any]:
    settings = argo.settings
    mode = settings.create_mode
    logger.debug("createWorkflow mode=%s", mode)
    if mode == "k8s":
        return create_via_k8s(settings, body)
    if mode == "events":
        return create_via_events(settings, body, argo.session)
    return argo.submit_workflow(_resource_name(body), body.get("parameters"))
