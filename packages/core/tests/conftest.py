"""Shared fixtures: an in-process fake of the release-agent backend."""

import json

import httpx
import pytest

from release_agent_core.api.release_agent import ReleaseAgentApi

BASE_URL = "http://api.test"


class FakeBackend:
    """Route table for httpx.MockTransport. Records every request it sees.

    Routes are keyed by method and the still-encoded path.
    A route is either (status, payload) or a callable taking the request.
    Unknown routes answer 404 with a JSON message.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, payload=None, status=200):
        self.routes[(method, path)] = payload if callable(payload) else (status, payload)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.raw_path.split(b"?", 1)[0].decode("ascii")
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        if callable(route):
            return route(request)
        status, payload = route
        if payload is None:
            return httpx.Response(status)
        return httpx.Response(status, json=payload)

    def api(self, token=None) -> ReleaseAgentApi:
        return ReleaseAgentApi(BASE_URL, token=token, transport=httpx.MockTransport(self.handler))

    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last().content)


@pytest.fixture
def backend():
    return FakeBackend()
