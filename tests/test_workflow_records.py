"""Tests for slimming, ordering and pod lookup over workflow records."""

from datetime import datetime, timezone

from tests.helpers import workflow
from workflow_records import (
    EPOCH,
    build_tree,
    find_pod_name,
    group_key,
    next_cursor,
    parse_timestamp,
    slim_node,
    slim_workflow,
    sort_workflows,
)


class TestSlimWorkflow:

    def test_missing_sections_default_to_empty_values(self):
        slim = slim_workflow({"metadata": {"name": "wf"}})

        assert slim["metadata"] == {"name": "wf", "generateName": None, "labels": {}}
        assert slim["spec"] == {"arguments": {"parameters": []}}
        assert slim["status"]["conditions"] == []
        assert slim["status"]["nodes"] == {}
        assert slim["status"]["phase"] is None

    def test_empty_record_does_not_raise(self):
        slim = slim_workflow({})
        assert slim["metadata"]["labels"] == {}

    def test_keeps_only_projected_fields(self):
        record = {
            "apiVersion": "argoproj.io/v1alpha1",
            "kind": "Workflow",
            "metadata": {
                "name": "build-abc",
                "generateName": "build-",
                "labels": {"team": "data"},
                "uid": "1234",
                "managedFields": [{"manager": "argo"}],
            },
            "spec": {
                "workflowTemplateRef": {"name": "build", "clusterScope": False},
                "arguments": {"parameters": [{"name": "x", "value": "1", "description": "d"}]},
                "templates": [{"name": "main"}],
            },
            "status": {
                "phase": "Failed",
                "startedAt": "2024-05-01T10:00:00Z",
                "finishedAt": "2024-05-01T10:05:00Z",
                "message": "child failed",
                "progress": "1/2",
                "conditions": [
                    {"type": "PodRunning", "status": "False"},
                    {"type": "Failed", "status": "True"},
                ],
            },
        }

        slim = slim_workflow(record, include_nodes=False)

        assert slim == {
            "apiVersion": "argoproj.io/v1alpha1",
            "kind": "Workflow",
            "metadata": {"name": "build-abc", "generateName": "build-", "labels": {"team": "data"}},
            "spec": {
                "arguments": {"parameters": [{"name": "x", "value": "1"}]},
                "workflowTemplateRef": {"name": "build"},
            },
            "status": {
                "phase": "Failed",
                "startedAt": "2024-05-01T10:00:00Z",
                "finishedAt": "2024-05-01T10:05:00Z",
                "message": "child failed",
                "conditions": [{"type": "Failed", "status": "True"}],
            },
        }

    def test_nodes_omitted_when_disabled(self):
        record = workflow("wf", nodes={"wf": {"id": "wf", "type": "Steps"}})
        assert "nodes" not in slim_workflow(record, include_nodes=False)["status"]

    def test_nodes_projected_when_enabled(self):
        record = workflow("wf", nodes={"wf-1": {"id": "wf-1", "type": "Pod", "hostNodeName": "kind"}})
        nodes = slim_workflow(record)["status"]["nodes"]
        assert set(nodes) == {"wf-1"}
        assert "hostNodeName" not in nodes["wf-1"]


class TestSlimNode:

    def test_optional_fields_only_when_present(self):
        slim = slim_node({"id": "n", "type": "Pod", "displayName": "step", "phase": "Running",
                          "startedAt": "2024-05-01T10:00:00Z", "outputs": {"parameters": []}})
        assert slim == {"id": "n", "type": "Pod", "displayName": "step", "phase": "Running",
                        "startedAt": "2024-05-01T10:00:00Z"}

    def test_template_pod_and_outputs(self):
        slim = slim_node({
            "id": "n",
            "templateRef": {"name": "build", "template": "compile"},
            "podName": "wf-build-1",
            "outputs": {"parameters": [{"name": "digest", "value": "sha", "valueFrom": {"path": "/x"}}],
                        "artifacts": [{"name": "log"}]},
        })
        assert slim["templateRef"] == {"name": "build"}
        assert slim["podName"] == "wf-build-1"
        assert slim["outputs"] == {"parameters": [{"name": "digest", "value": "sha"}]}


class TestOrdering:

    def test_group_key_fallbacks(self):
        assert group_key(workflow("a", template="tpl", generate_name="gen-")) == "tpl"
        assert group_key(workflow("a", generate_name="gen-")) == "gen-"
        assert group_key(workflow("a")) == ""

    def test_groups_ascending_then_newest_first(self):
        t1 = "2024-05-01T09:00:00Z"
        t2 = "2024-05-01T10:00:00Z"
        t3 = "2024-05-01T11:00:00Z"
        records = [
            workflow("b1", template="b", started_at=t1),
            workflow("a3", template="a", started_at=t3),
            workflow("a2", template="a", started_at=t2),
        ]
        # same order regardless of input order
        for page in (records, list(reversed(records))):
            sort_workflows(page)
            assert [r["metadata"]["name"] for r in page] == ["a3", "a2", "b1"]

    def test_missing_started_at_sorts_as_oldest(self):
        records = [
            workflow("pending", template="a"),
            workflow("running", template="a", started_at="2024-05-01T10:00:00Z"),
        ]
        sort_workflows(records)
        assert [r["metadata"]["name"] for r in records] == ["running", "pending"]

    def test_sorts_in_place(self):
        records = [workflow("z", template="z"), workflow("a", template="a")]
        result = sort_workflows(records)
        assert result is records
        assert records[0]["metadata"]["name"] == "a"


class TestNextCursor:

    def test_metadata_continue(self):
        assert next_cursor({"metadata": {"continue": "abc"}}) == "abc"

    def test_alternate_fields(self):
        assert next_cursor({"continueToken": "tok"}) == "tok"
        assert next_cursor({"continue": "c"}) == "c"

    def test_first_present_wins(self):
        assert next_cursor({"metadata": {"continue": ""}, "continueToken": "tok", "continue": "c"}) == "tok"

    def test_absent_is_none(self):
        assert next_cursor({"items": []}) is None
        assert next_cursor({"metadata": {"continue": ""}}) is None


class TestFindPodName:

    def test_direct_lookup_wins(self):
        nodes = {
            "n1": {"id": "n1", "podName": "p1", "templateRef": {"name": "build"}},
            "other": {"id": "n1", "podName": "p-other"},
        }
        assert find_pod_name("wf", nodes, "n1") == "p1"

    def test_scan_by_node_id(self):
        nodes = {"key-1": {"id": "wf-123", "podName": "wf-step-123"}}
        assert find_pod_name("wf", nodes, "wf-123") == "wf-step-123"

    def test_reconstructs_from_template_ref_literally(self):
        nodes = {"wf-build-5": {"id": "wf-build-5", "templateRef": {"name": "build"}}}
        assert find_pod_name("wf-build", nodes, "wf-build-5") == "wf-build-build-5"
        assert find_pod_name("wf", nodes, "wf-build-5") == "wf-build-5"

    def test_suffix_match(self):
        nodes = {
            "wf": {"id": "wf", "type": "Steps"},
            "wf-777": {"id": "wf-777", "podName": "wf-main-777"},
        }
        assert find_pod_name("wf", nodes, "wf-x-777") == "wf-main-777"

    def test_unresolvable(self):
        nodes = {"wf-1": {"id": "wf-1", "podName": "wf-main-1"}}
        assert find_pod_name("wf", nodes, "wf-999") is None
        assert find_pod_name("wf", {}, "wf-999") is None

    def test_trailing_hyphen_does_not_match_everything(self):
        nodes = {"wf-1": {"id": "wf-1", "podName": "wf-main-1"}}
        assert find_pod_name("wf", nodes, "wf-") is None


class TestBuildTree:

    def test_step_groups_are_flattened(self):
        nodes = {
            "wf": {"id": "wf", "displayName": "wf", "type": "Steps", "phase": "Running", "children": ["wf-g"]},
            "wf-g": {"id": "wf-g", "displayName": "[0]", "type": "StepGroup", "children": ["wf-1", "wf-2"]},
            "wf-1": {"id": "wf-1", "displayName": "fetch", "type": "Pod", "phase": "Succeeded",
                     "podName": "wf-fetch-1"},
            "wf-2": {"id": "wf-2", "displayName": "train", "type": "Pod", "phase": "Running"},
        }

        tree = build_tree(nodes, "wf")

        assert tree == [
            {"id": "wf-1", "name": "fetch", "status": "Succeeded", "type": "Pod",
             "podName": "wf-fetch-1", "children": []},
            {"id": "wf-2", "name": "train", "status": "Running", "type": "Pod", "children": []},
        ]

    def test_missing_children_are_skipped(self):
        nodes = {"wf": {"children": ["gone"]}}
        assert build_tree(nodes, "wf") == []


class TestParseTimestamp:

    def test_nanosecond_precision(self):
        parsed = parse_timestamp("2024-05-01T10:00:00.123456789Z")
        assert parsed == datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)

    def test_short_fraction(self):
        parsed = parse_timestamp("2024-05-01T10:00:00.5Z")
        assert parsed.microsecond == 500000

    def test_garbled_is_epoch(self):
        assert parse_timestamp("yesterday") == EPOCH
        assert parse_timestamp(None) == EPOCH

    def test_fraction_precision_does_not_change_order(self):
        records = [
            workflow("older", template="a", started_at="2024-05-01T10:00:00.1Z"),
            workflow("newer", template="a", started_at="2024-05-01T10:00:00.2345678Z"),
        ]
        sort_workflows(records)
        assert [r["metadata"]["name"] for r in records] == ["newer", "older"]
