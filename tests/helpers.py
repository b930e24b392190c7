"""Test helpers shared across modules."""

import json

import httpx

from artists_api.db.models import Regional
from artists_api.services.regional_source import RegionalSource

SOURCE_URL = "https://regionals.test/v1/regionais"


class FakeUpstream:
    """Mutable upstream feed served through httpx.MockTransport."""

    def __init__(self):
        self.items = []
        self.status_code = 200
        self.body = None
        self.error = None
        self.requests = []

    def set(self, *pairs):
        self.items = [{"id": ext_id, "nome": name} for ext_id, name in pairs]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.body is not None:
            return httpx.Response(self.status_code, content=self.body)
        return httpx.Response(self.status_code, content=json.dumps(self.items))

    def source(self, **kwargs) -> RegionalSource:
        return RegionalSource(
            SOURCE_URL, transport=httpx.MockTransport(self.handler), **kwargs
        )


def login(client, login_name, password):
    resp = client.post("/login", data={"login": login_name, "password": password})
    assert resp.status_code == 200, resp.text
    return resp


def make_row(id, external_id, name, is_active=True):
    """Unsaved mirror row for pure reconciler tests."""
    return Regional(id=id, external_id=external_id, name=name, is_active=is_active)
