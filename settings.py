# Process-wide configuration for the dashboard backend.
import logging
import os
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

SA_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"
SA_CA_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/ca.crt"
DEFAULT_PAGE_SIZE = 50

_TRUTHY = {"true", "1", "yes", "on"}


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUTHY


def _page_size(value: Optional[str]) -> int:
    try:
        size = int(value) if value else DEFAULT_PAGE_SIZE
    except ValueError:
        logger.warning("Ignoring non-integer WORKFLOW_PAGE_SIZE %r", value)
        size = DEFAULT_PAGE_SIZE
    return max(1, size)


def read_token(path: str) -> Optional[str]:
    """Read a mounted bearer token, returning None when it is missing or empty."""
    try:
        with open(path, encoding="utf-8") as f:
            token = f.read().strip()
    except OSError as e:
        logger.debug("No SA token file found: %s", e)
        return None
    logger.debug("Loaded SA token from %s", path)
    return token or None


class Settings(BaseModel):
    """Immutable configuration, built once at startup and passed to every component."""

    model_config = ConfigDict(frozen=True)

    argo_url: str = "http://argo-workflows-server:2746"
    namespace: str = "default"
    token: Optional[str] = None
    token_path: str = SA_TOKEN_PATH
    insecure: bool = False
    page_size: int = DEFAULT_PAGE_SIZE
    include_nodes: bool = True

    create_mode: Literal["submit", "events", "k8s"] = "submit"
    events_scheme: str = "http"
    events_svc_suffix: str = "-eventsource-svc"
    events_port: str = "12000"
    events_path: str = "/"
    k8s_api_url: str = "https://kubernetes.default.svc"
    k8s_ca_path: str = SA_CA_PATH
    k8s_insecure: bool = False

    debug: bool = False
    static_dir: str = "public"
    port: int = 8080

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        token_path = env.get("ARGO_TOKEN_PATH", SA_TOKEN_PATH)
        token = env.get("ARGO_WORKFLOWS_TOKEN") or read_token(token_path)

        create_mode = env.get("CREATE_MODE", "submit").strip().lower() or "submit"

        return cls(
            argo_url=env.get("ARGO_WORKFLOWS_URL", cls.model_fields["argo_url"].default).rstrip("/"),
            namespace=env.get("ARGO_WORKFLOWS_NAMESPACE") or env.get("POD_NAMESPACE") or "default",
            token=token,
            token_path=token_path,
            insecure=_flag(env.get("ARGO_INSECURE_SKIP_TLS_VERIFY"), False),
            page_size=_page_size(env.get("WORKFLOW_PAGE_SIZE")),
            include_nodes=_flag(env.get("WORKFLOW_LIST_INCLUDE_NODES"), True),
            create_mode=create_mode,
            events_scheme=env.get("ARGO_EVENTS_SCHEME", "http"),
            events_svc_suffix=env.get("ARGO_EVENTS_SVC_SUFFIX", "-eventsource-svc"),
            events_port=env.get("ARGO_EVENTS_PORT", "12000"),
            events_path=env.get("ARGO_EVENTS_PATH", "/"),
            k8s_api_url=env.get("K8S_API_URL", "https://kubernetes.default.svc"),
            k8s_ca_path=env.get("K8S_CA_PATH", SA_CA_PATH),
            k8s_insecure=_flag(env.get("K8S_INSECURE_SKIP_TLS_VERIFY"), False),
            debug=_flag(env.get("DEBUG_LOGS"), False),
            static_dir=env.get("STATIC_DIR", "public"),
            port=int(env.get("PORT") or 8080),
        )
