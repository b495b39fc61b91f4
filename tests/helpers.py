from unittest import mock


def make_response(status=200, body=None, chunks=None, content_type="application/json"):
    """A stand-in for requests.Response with just what the client reads."""
    response = mock.MagicMock()
    response.status_code = status
    response.ok = status < 400
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    response.headers = {"Content-Type": content_type}
    response.iter_content.return_value = iter(chunks or [])
    return response


def workflow(name, template=None, generate_name=None, started_at=None, **status):
    record = {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Workflow",
        "metadata": {"name": name},
        "spec": {},
        "status": dict(status),
    }
    if generate_name:
        record["metadata"]["generateName"] = generate_name
    if template:
        record["spec"]["workflowTemplateRef"] = {"name": template}
    if started_at:
        record["status"]["startedAt"] = started_at
    return record
