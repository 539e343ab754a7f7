# crosspost/services/social/http.py
from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from .errors import error_from_graph, error_from_status


def new_session() -> requests.Session:
    s = requests.Session()
    s.headers.update({"User-Agent": "crosspost-publisher/1.0"})
    return s


def safe_json(resp: requests.Response) -> Dict[str, Any]:
    try:
        data = resp.json()
        return data if isinstance(data, dict) else {"data": data}
    except ValueError:
        return {"raw": (resp.text or "")[:2000]}


def bearer_headers(access_token: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    h = {"Authorization": f"Bearer {access_token}"}
    if extra:
        h.update(extra)
    return h


def raise_if_http_error(resp: requests.Response, prefix: str) -> Dict[str, Any]:
    """Parse the body and raise a typed PublishingError on a non-2xx response."""
    data = safe_json(resp)
    if resp.status_code < 400:
        return data
    err = data.get("error")
    if isinstance(err, dict):
        message = err.get("message") or err.get("status") or str(err)
        code = err.get("code")
    else:
        message = data.get("message") or err or data.get("raw") or "request failed"
        code = data.get("code")
    raise error_from_status(resp.status_code, f"{prefix}: {message}", code=code, payload=data)


def raise_if_graph_error(resp: requests.Response, prefix: str) -> Dict[str, Any]:
    """Graph API flavour: error codes inside `error` decide the kind."""
    data = safe_json(resp)
    if resp.status_code < 400 and not data.get("error"):
        return data
    status = resp.status_code if resp.status_code >= 400 else 400
    raise error_from_graph(data, status, prefix)
