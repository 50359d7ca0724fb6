"""Shared pytest fixtures for patron-creator tests.

This module provides:
- A fake ILS and a fake address vendor served through ``httpx.MockTransport``
- A controllable clock for token expiry
- An in-memory SQLite barcode store
- Factories for ILS patron records and vendor address matches
- An isolated ~/.patron-creator directory and environment
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from patron_creator import config
from patron_creator.ils.gateway import IdentityGateway
from patron_creator.storage.barcodes import BarcodeStore
from patron_creator.validation.address import AddressValidationAdapter, ServiceObjectsClient

TOKEN_URL = "https://ils.test/oauth/token"
CREATE_URL = "https://ils.test/patrons/"
FIND_URL = "https://ils.test/patrons/find"
VENDOR_URL = "https://ws.serviceobjects.com/AV3/api.svc/GetBestMatchesJSON"

SEED_BARCODE = "28888055432443"

CannedResponse = Any


def _build_response(canned: CannedResponse, request: httpx.Request) -> httpx.Response:
    if callable(canned):
        return canned(request)
    status, body, *rest = canned
    headers = rest[0] if rest else None
    if body is None:
        return httpx.Response(status, headers=headers)
    return httpx.Response(status, json=body, headers=headers)


class FakeILS:
    """Routes ILS requests to canned responses and records what was sent.

    Each route holds a queue of ``(status, body[, headers])`` tuples or
    callables; the last entry is repeated once the queue is drained.
    """

    def __init__(self) -> None:
        self.token_requests = 0
        self.token_status = 200
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], list[CannedResponse]] = {}

    def on(self, method: str, path: str, *responses: CannedResponse) -> None:
        self.routes[(method, path)] = list(responses)

    def calls(self, method: str, path: str | None = None) -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == method and (path is None or request.url.path == path)
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            self.token_requests += 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": f"token-{self.token_requests}"})

        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(500, json={"description": "No route configured"})
        canned = queue.pop(0) if len(queue) > 1 else queue[0]
        return _build_response(canned, request)


class FakeVendor:
    """Serves Service Objects responses and counts calls."""

    def __init__(self) -> None:
        self.calls = 0
        self.responses: list[CannedResponse] = [(200, {"Addresses": []})]

    def respond(self, *responses: CannedResponse) -> None:
        self.responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        canned = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return _build_response(canned, request)


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_ils() -> FakeILS:
    return FakeILS()


@pytest.fixture
def fake_vendor() -> FakeVendor:
    return FakeVendor()


@pytest.fixture
def gateway(fake_ils: FakeILS, clock: FakeClock) -> IdentityGateway:
    """An ``IdentityGateway`` talking to ``fake_ils``."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_ils))
    return IdentityGateway(
        client,
        client_key="key",
        client_secret="secret",
        token_url=TOKEN_URL,
        create_url=CREATE_URL,
        find_url=FIND_URL,
        clock=clock,
    )


@pytest.fixture
def address_validator(fake_vendor: FakeVendor) -> AddressValidationAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_vendor))
    return AddressValidationAdapter(ServiceObjectsClient(client, "license", VENDOR_URL))


@pytest.fixture
def store() -> BarcodeStore:
    """A fresh in-memory barcode store."""
    return BarcodeStore.from_url("sqlite://")


@pytest.fixture
def seeded_store(store: BarcodeStore) -> BarcodeStore:
    store.seed(SEED_BARCODE, used=True)
    return store


@pytest.fixture
def patron_json() -> Callable[..., dict[str, Any]]:
    """Factory for ILS patron records as the find endpoint returns them."""

    def _make(
        patron_id: int = 1234567,
        ptype: int = 10,
        barcode: str = "25555000000001",
        username: str = "parentuser",
        expiration: str = "2099-01-01",
        dependents: list[str] | None = None,
    ) -> dict[str, Any]:
        var_fields = [
            {"fieldTag": "b", "content": barcode},
            {"fieldTag": "u", "content": username},
            {"fieldTag": "x", "content": "Registered online"},
        ]
        if dependents is not None:
            var_fields.append({"fieldTag": "x", "content": "DEPENDENTS " + ",".join(dependents)})
        return {
            "id": patron_id,
            "patronType": ptype,
            "varFields": var_fields,
            "names": ["PARENT, JANE"],
            "addresses": [{"lines": ["476 5TH AVENUE", "NEW YORK, NY 10018"], "type": "a"}],
            "emails": ["jane@example.com"],
            "barcodes": [barcode],
            "expirationDate": expiration,
        }

    return _make


@pytest.fixture
def vendor_match() -> Callable[..., dict[str, Any]]:
    """Factory for one Service Objects ``Addresses`` entry."""

    def _make(
        line1: str = "476 5th Ave",
        city: str = "New York",
        state: str = "NY",
        county: str = "New York",
        zip_code: str = "10018-2788",
        residential: str = "true",
    ) -> dict[str, Any]:
        return {
            "Address1": line1,
            "Address2": "",
            "City": city,
            "State": state,
            "Zip": zip_code,
            "CountyName": county,
            "IsResidential": residential,
        }

    return _make


@pytest.fixture
def patron_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point ~ at a temporary directory and clear every config variable."""
    monkeypatch.setenv("HOME", str(tmp_path))
    for name in (
        *config.ILS_ENV_VARS,
        "SO_LICENSE_KEY",
        "SO_API_URL",
        "PATRON_CREATOR_PORT",
        "PATRON_CREATOR_DB_URL",
        "BARCODE_PREFIX",
        "HTTP_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "_env_loaded", False)
    return tmp_path / ".patron-creator"
