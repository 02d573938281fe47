import json

import httpx

import client
from auth.models import TokenPair
from auth.token_store import MemoryTokenStore
from tests.pipeline_helpers import PortalBackend, build_pipeline


def _patch_factory(monkeypatch, handler, store=None) -> None:
    store = store or MemoryTokenStore(TokenPair("access1", "refresh1"))
    monkeypatch.setattr(client, "create_client", lambda: build_pipeline(handler, store))


def test_main_prints_json_body(monkeypatch, capsys) -> None:
    _patch_factory(monkeypatch, PortalBackend())

    exit_code = client.main(["get", "/users/me/"])

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out) == {"path": "/api/users/me/"}


def test_main_reports_api_error(monkeypatch, capsys) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"detail": "Admins only."})

    _patch_factory(monkeypatch, handler)

    exit_code = client.main(["DELETE", "/admin/users/3/"])

    assert exit_code == 1
    assert "forbidden: Admins only." in capsys.readouterr().err


def test_main_usage(capsys) -> None:
    assert client.main(["FETCH", "/users/me/"]) == 2
    assert "usage" in capsys.readouterr().err
