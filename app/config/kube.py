import os
import ssl
from pathlib import Path

import httpx

from config import app_settings

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")


def connect_to_kube(
    *,
    api_url: str | None = None,
    token: str | None = None,
    ca_path: str | None = None,
    verify_ssl: bool | None = None,
    service_account_dir: Path = SERVICE_ACCOUNT_DIR,
) -> httpx.AsyncClient:
    """
    Build an HTTP client for the Kubernetes API server.

    Arguments fall back to the settings (``KUBE_API_URL``, ``KUBE_TOKEN``,
    ``KUBE_CA_PATH``, ``KUBE_VERIFY_SSL``). Without an explicit URL the client
    targets the in-cluster service and uses the pod's service account token
    and CA bundle.

    Raises:
    - RuntimeError if neither a URL nor an in-cluster service is available.
    """
    api_url = api_url or app_settings.KUBE_API_URL
    token = token or app_settings.KUBE_TOKEN
    ca_path = ca_path or app_settings.KUBE_CA_PATH
    if verify_ssl is None:
        verify_ssl = app_settings.KUBE_VERIFY_SSL

    if not api_url:
        host = os.getenv("KUBERNETES_SERVICE_HOST")
        port = os.getenv("KUBERNETES_SERVICE_PORT", "443")
        if not host:
            raise RuntimeError(
                "KUBE_API_URL is not set and no in-cluster Kubernetes service found"
            )
        api_url = f"https://{host}:{port}"
        token_file = service_account_dir / "token"
        if token is None and token_file.exists():
            token = token_file.read_text(encoding="utf-8").strip()
        ca_file = service_account_dir / "ca.crt"
        if ca_path is None and ca_file.exists():
            ca_path = str(ca_file)

    verify: ssl.SSLContext | bool = verify_ssl
    if verify_ssl and ca_path:
        verify = ssl.create_default_context(cafile=ca_path)

    headers = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    return httpx.AsyncClient(
        base_url=api_url,
        headers=headers,
        verify=verify,
        timeout=httpx.Timeout(30.0),
    )
