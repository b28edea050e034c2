import inspect
import json
import socket
from pathlib import Path

import httpx
import pytest

from arrears.core.config import settings
from arrears.core.observability import logging as logging_module
from arrears.core.observability.metrics import reset_metrics

VIOLATIONS = []
ARTIFACTS_DIR = Path("artifacts")
REPORT = ARTIFACTS_DIR / "egress-violations.json"

LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}


def _is_allowed_callstack(allowed_paths: list[str]) -> bool:
    for frame in inspect.stack():
        filename = (frame.filename or "").replace("\\", "/")
        for ap in allowed_paths:
            if ap in filename:
                return True
    return False


@pytest.fixture(autouse=True, scope="session")
def egress_guard():
    """Block real network egress; channels must be tested with a mocked client."""
    allowed_client_paths = [
        "/arrears/integrations/",
    ]

    real_getaddrinfo = socket.getaddrinfo
    real_create_connection = socket.create_connection
    real_httpx_init = httpx.Client.__init__

    def guard_getaddrinfo(host, *args, **kwargs):
        if isinstance(host, str) and host in LOCAL_HOSTS:
            return real_getaddrinfo(host, *args, **kwargs)
        VIOLATIONS.append({"fn": "getaddrinfo", "host": str(host)})
        raise RuntimeError("Egress blocked: getaddrinfo disallowed")

    def guard_create_connection(address, *args, **kwargs):
        host = address[0] if isinstance(address, tuple) else None
        if host in LOCAL_HOSTS:
            return real_create_connection(address, *args, **kwargs)
        VIOLATIONS.append({"fn": "create_connection", "address": str(address)})
        raise RuntimeError("Egress blocked: create_connection disallowed")

    def guard_httpx_init(self, *args, **kwargs):
        if not _is_allowed_callstack(allowed_client_paths):
            VIOLATIONS.append({"fn": "httpx.Client.__init__"})
            raise RuntimeError("Egress blocked: httpx.Client not allowed from this callsite")
        return real_httpx_init(self, *args, **kwargs)

    socket.getaddrinfo = guard_getaddrinfo  # type: ignore[assignment]
    socket.create_connection = guard_create_connection  # type: ignore[assignment]
    httpx.Client.__init__ = guard_httpx_init  # type: ignore[assignment]

    yield

    # Restore
    socket.getaddrinfo = real_getaddrinfo  # type: ignore[assignment]
    socket.create_connection = real_create_connection  # type: ignore[assignment]
    httpx.Client.__init__ = real_httpx_init  # type: ignore[assignment]

    if VIOLATIONS:
        ARTIFACTS_DIR.mkdir(parents=True, exist_ok=True)
        REPORT.write_text(json.dumps(VIOLATIONS, indent=2))


@pytest.fixture(autouse=True)
def isolated_run(tmp_path, monkeypatch):
    """Fresh metrics, no run ID, and transition logs under tmp_path."""
    reset_metrics()
    logging_module.set_run_id(None)
    monkeypatch.setattr(settings, "enable_metrics", True)
    monkeypatch.setattr(settings, "TRANSITION_LOG_DIR", str(tmp_path / "transitions"))
    monkeypatch.setattr(settings, "REMINDER_CHANNEL", "dry_run")
    yield
    reset_metrics()
