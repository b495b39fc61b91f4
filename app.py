# Flask backend for the Argo Workflows dashboard: a thin proxy in front of the Argo server.
import logging
import os

from dotenv import load_dotenv
from flask import Flask, Response, abort, jsonify, request, send_from_directory
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from argo_workflows import ArgoClient
from create_workflow import create_workflow
from errors import DashboardError
from log_stream import LogOptions, stream_logs
from settings import Settings
from workflow_records import as_mapping, build_tree, slim_workflow

logger = logging.getLogger(__name__)


def configure_logging(settings):
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_limit(value):
    if value is None or value == "":
        return None
    try:
        limit = int(value)
    except ValueError:
        limit = 0
    if limit < 1:
        abort(400, description="limit must be a positive integer")
    return limit


def create_app(settings=None, argo=None):
    if settings is None:
        load_dotenv()
        settings = Settings.from_env()
        configure_logging(settings)
    argo = argo or ArgoClient(settings)

    # Initialize the Flask application.
    app = Flask(__name__, static_folder=None)
    app.config["SETTINGS"] = settings
    app.config["ARGO"] = argo
    # Enable Cross-Origin Resource Sharing to allow a separately served frontend.
    CORS(app)

    # Optional request logging.
    if settings.debug:
        @app.before_request
        def log_request():
            logger.debug("%s %s", request.method, request.full_path.rstrip("?"))

    # One page of workflows, slimmed and sorted; follow nextCursor for more.
    @app.route("/api/workflows", methods=["GET"])
    def list_workflows():
        limit = _parse_limit(request.args.get("limit"))
        return jsonify(argo.list_workflows(limit=limit, cursor=request.args.get("cursor")))

    # A single workflow with its node hierarchy.
    @app.route("/api/workflows/<name>", methods=["GET"])
    def get_workflow(name):
        wf = argo.get_workflow(name)
        nodes = as_mapping(as_mapping(wf.get("status")).get("nodes"))
        detail = slim_workflow(wf, include_nodes=True)
        detail["tree"] = build_tree(nodes, as_mapping(wf.get("metadata")).get("name") or name)
        return jsonify(detail)

    @app.route("/api/workflows/<name>", methods=["DELETE"])
    def delete_workflow(name):
        return jsonify(argo.delete_workflow(name))

    # Live logs of a workflow, or of one task pod when nodeId/podName is given.
    @app.route("/api/workflows/<name>/logs", methods=["GET"])
    def workflow_logs(name):
        args = request.args
        options = LogOptions(
            follow=args.get("follow") != "false",
            container=args.get("container") or "main",
            node_id=args.get("nodeId") or None,
            pod_name=args.get("podName") or None,
            since_time=args.get("sinceTime"),
            since_seconds=args.get("sinceSeconds"),
            tail_lines=args.get("tailLines"),
            timestamps=args.get("timestamps"),
            previous=args.get("previous"),
        )
        logs = stream_logs(argo, name, options)
        if not logs.ok:
            return Response(status=logs.status_code)
        return Response(logs, status=logs.status_code,
                        content_type=logs.content_type or "application/octet-stream",
                        direct_passthrough=True)

    @app.route("/api/templates", methods=["GET"])
    def list_templates():
        return jsonify(argo.list_templates())

    @app.route("/api/workflows", methods=["POST"])
    def submit_workflow():
        body = request.get_json(silent=True) or {}
        try:
            return jsonify(create_workflow(argo, body))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

    # Serve the built single-page UI; unknown paths fall back to index.html.
    @app.route("/", defaults={"path": ""})
    @app.route("/<path:path>")
    def serve_ui(path):
        if path.startswith("api/"):
            abort(404)
        static_dir = os.path.abspath(settings.static_dir)
        if path and os.path.isfile(os.path.join(static_dir, path)):
            return send_from_directory(static_dir, path)
        if not os.path.isfile(os.path.join(static_dir, "index.html")):
            abort(404)
        return send_from_directory(static_dir, "index.html")

    @app.errorhandler(DashboardError)
    def handle_dashboard_error(e):
        return jsonify({"error": str(e)}), e.http_status

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description}), e.code
        logger.exception("Unhandled error")
        return jsonify({"error": str(e)}), 500

    return app


# Main entry point to run the Flask development server.
if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=app.config["SETTINGS"].port)
