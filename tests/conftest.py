import os
import re
import socket
import sys
import urllib.request
from pathlib import Path

import httpx
import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC = REPO_ROOT / "src"

# Prefer repo sources over any installed package.
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


REGISTRY_HOST = "datacatalog.cookcountyil.gov"
PROVIDER_HOST = "app.realie.ai"

_PIN_IN_WHERE = re.compile(r"pin='(\d+)'")


@pytest.fixture(autouse=True)
def block_network(monkeypatch):
    if os.getenv("LIVE") == "1":
        return

    real_connect = socket.socket.connect

    def guarded_connect(sock, address):
        host = address[0]
        if host not in ("127.0.0.1", "localhost"):
            raise RuntimeError("Network access blocked in tests")
        return real_connect(sock, address)

    monkeypatch.setattr(socket.socket, "connect", guarded_connect)
    monkeypatch.setattr(
        urllib.request,
        "urlopen",
        lambda *args, **kwargs: (_ for _ in ()).throw(
            RuntimeError("Network access blocked in tests")
        ),
    )


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    from tax_appeal_comps.settings import reset_settings_cache

    for key in list(os.environ):
        if key.startswith("TAC_"):
            monkeypatch.delenv(key, raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture(autouse=True)
def restore_logging():
    import logging

    from tax_appeal_comps.log import ROOT_LOGGER

    yield
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def by_pin(rows_by_pin):
    """Route a Socrata dataset by the pin in its $where clause."""

    def route(request):
        match = _PIN_IN_WHERE.search(request.url.params.get("$where", ""))
        if not match:
            return []
        return rows_by_pin.get(match.group(1), [])

    return route


class FakeApi:
    """Canned answers for the county catalog and the provider, keyed by route.

    Registry routes are dataset ids (``tx2p-k2g9``); provider routes are paths
    under ``/api/public`` (``property/parcelId``). A route is a JSON value, an
    ``httpx.Response`` or a callable taking the request and returning either.
    """

    def __init__(self):
        self.registry = {}
        self.provider = {}
        self.calls = []

    def _answer(self, route, request):
        if callable(route):
            route = route(request)
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    def handler(self, request):
        self.calls.append(request)
        if request.url.host == REGISTRY_HOST:
            dataset = request.url.path.rsplit("/", 1)[-1].replace(".json", "")
            return self._answer(self.registry.get(dataset, []), request)
        if request.url.host == PROVIDER_HOST:
            path = request.url.path.split("/api/public/", 1)[-1].strip("/")
            if path not in self.provider:
                return httpx.Response(404, json={"error": "not found"})
            return self._answer(self.provider[path], request)
        return httpx.Response(599, text=f"unexpected host {request.url.host}")

    @property
    def transport(self):
        return httpx.MockTransport(self.handler)

    def client(self):
        return httpx.AsyncClient(transport=self.transport)

    def registry_calls(self, dataset=None):
        return [
            c
            for c in self.calls
            if c.url.host == REGISTRY_HOST
            and (dataset is None or c.url.path.endswith(f"/{dataset}.json"))
        ]

    def provider_calls(self, path=None):
        return [
            c
            for c in self.calls
            if c.url.host == PROVIDER_HOST
            and (path is None or path in c.url.path)
        ]


@pytest.fixture
def fake_api():
    return FakeApi()


@pytest.fixture
def route_by_pin():
    return by_pin
