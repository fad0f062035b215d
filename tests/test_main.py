"""Application entry point and health check."""

import runpy
from unittest.mock import patch

from fastapi.testclient import TestClient

from cbt.config import settings


def test_health(client: TestClient):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy", "service": "cbt-exam-backend"}


def test_runs_uvicorn_with_server_settings():
    with patch("uvicorn.run") as run:
        runpy.run_module("cbt.main", run_name="__main__")

    run.assert_called_once_with(
        "cbt.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
