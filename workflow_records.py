"""Pure transformations over Argo workflow records.

Slimming keeps only what the dashboard renders, ordering groups runs by the
template they came from, and the pod lookup maps a node id to the pod that
backs it. Nothing here talks to the network.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Argo's internal step-group nodes, e.g. "[0]".
STEP_GROUP_RE = re.compile(r"^\[\d+\]$")

# Fractional seconds; padded or cut to microseconds before parsing.
FRACTION_RE = re.compile(r"\.(\d+)")


def as_mapping(value) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _sequence(value) -> List[Any]:
    return value if isinstance(value, list) else []


def _name_value(params) -> List[Dict[str, Any]]:
    return [
        {"name": p.get("name"), "value": p.get("value")}
        for p in _sequence(params)
        if isinstance(p, dict)
    ]


def slim_node(node: Dict[str, Any]) -> Dict[str, Any]:
    node = as_mapping(node)
    slim = {
        "id": node.get("id"),
        "type": node.get("type"),
        "displayName": node.get("displayName"),
        "phase": node.get("phase"),
        "startedAt": node.get("startedAt"),
    }
    template_name = as_mapping(node.get("templateRef")).get("name")
    if template_name:
        slim["templateRef"] = {"name": template_name}
    if node.get("podName"):
        slim["podName"] = node["podName"]
    outputs = _name_value(as_mapping(node.get("outputs")).get("parameters"))
    if outputs:
        slim["outputs"] = {"parameters": outputs}
    return slim


def slim_workflow(record: Dict[str, Any], include_nodes: bool = True) -> Dict[str, Any]:
    """Project a full workflow record onto the fields the UI needs.

    Missing sections default to empty values instead of disappearing, so the
    result always has the same shape. When ``include_nodes`` is false the
    ``status.nodes`` key is dropped to keep list payloads small.
    """
    record = as_mapping(record)
    metadata = as_mapping(record.get("metadata"))
    spec = as_mapping(record.get("spec"))
    status = as_mapping(record.get("status"))

    slim_spec = {
        "arguments": {
            "parameters": _name_value(as_mapping(spec.get("arguments")).get("parameters")),
        },
    }
    template_name = as_mapping(spec.get("workflowTemplateRef")).get("name")
    if template_name:
        slim_spec["workflowTemplateRef"] = {"name": template_name}

    slim_status = {
        "phase": status.get("phase"),
        "startedAt": status.get("startedAt"),
        "finishedAt": status.get("finishedAt"),
        "message": status.get("message"),
        "conditions": [
            c for c in _sequence(status.get("conditions"))
            if isinstance(c, dict) and c.get("type") == "Failed"
        ],
    }
    if include_nodes:
        slim_status["nodes"] = {
            node_id: slim_node(node)
            for node_id, node in as_mapping(status.get("nodes")).items()
        }

    return {
        "apiVersion": record.get("apiVersion"),
        "kind": record.get("kind"),
        "metadata": {
            "name": metadata.get("name"),
            "generateName": metadata.get("generateName"),
            "labels": dict(as_mapping(metadata.get("labels"))),
        },
        "spec": slim_spec,
        "status": slim_status,
    }


def group_key(record: Dict[str, Any]) -> str:
    """Template name, else generateName, else empty string."""
    record = as_mapping(record)
    template_name = as_mapping(as_mapping(record.get("spec")).get("workflowTemplateRef")).get("name")
    return template_name or as_mapping(record.get("metadata")).get("generateName") or ""


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse an Argo RFC 3339 timestamp; missing or garbled values become the epoch."""
    if not value:
        return EPOCH
    try:
        normalized = FRACTION_RE.sub(
            lambda m: "." + m.group(1)[:6].ljust(6, "0"), value.replace("Z", "+00:00"), count=1)
        parsed = datetime.fromisoformat(normalized)
    except (TypeError, ValueError):
        return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_workflows(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Sort in place by group key ascending, then startedAt descending."""
    # Two stable passes: newest first, then by group.
    records.sort(key=lambda r: parse_timestamp(as_mapping(r.get("status")).get("startedAt")), reverse=True)
    records.sort(key=group_key)
    return records


def next_cursor(body: Dict[str, Any]) -> Optional[str]:
    """Continuation token from whichever field this Argo version uses."""
    body = as_mapping(body)
    for value in (
        as_mapping(body.get("metadata")).get("continue"),
        body.get("continueToken"),
        body.get("continue"),
    ):
        if value:
            return value
    return None


def node_suffix(node_id: str) -> str:
    return node_id[node_id.rfind("-") + 1:]


def find_pod_name(workflow_name: str, nodes: Dict[str, Any], node_id: str) -> Optional[str]:
    """Best-effort mapping from a node id to the pod that ran it.

    Assumes Argo's convention that node ids and pod names share the trailing
    ``-<number>`` segment. The reconstructed ``<workflow>-<template>-<suffix>``
    name is returned unverified; if no such pod exists the log call fails
    upstream.
    """
    nodes = as_mapping(nodes)

    node = as_mapping(nodes.get(node_id))
    if node.get("podName"):
        return node["podName"]

    for candidate in nodes.values():
        candidate = as_mapping(candidate)
        if candidate.get("id") == node_id and candidate.get("podName"):
            return candidate["podName"]

    suffix = node_suffix(node_id)

    template_name = as_mapping(node.get("templateRef")).get("name")
    if template_name:
        return f"{workflow_name}-{template_name}-{suffix}"

    if suffix:
        for candidate in nodes.values():
            pod_name = as_mapping(candidate).get("podName")
            if pod_name and pod_name.endswith(suffix):
                return pod_name

    return None


def build_tree(nodes: Dict[str, Any], parent_id: str) -> List[Dict[str, Any]]:
    """Turn Argo's flat node map into a nested tree under ``parent_id``."""
    tree = []
    children_ids = as_mapping(nodes.get(parent_id)).get("children", [])

    for child_id in children_ids:
        node_info = as_mapping(nodes.get(child_id))
        if not node_info:
            continue

        display_name = node_info.get("displayName", child_id)
        if STEP_GROUP_RE.match(display_name):
            tree.extend(build_tree(nodes, child_id))
            continue

        entry = {
            "id": child_id,
            "name": display_name,
            "status": node_info.get("phase", "Unknown"),
            "type": node_info.get("type", "Unknown"),
        }
        if node_info.get("podName"):
            entry["podName"] = node_info["podName"]
        entry["children"] = build_tree(nodes, child_id)
        tree.append(entry)
    return tree
