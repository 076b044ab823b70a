import asyncio
import json
import os
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

# Settings are read at import time; pin a test environment first.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "INFO")
os.environ.setdefault("SUPABASE_URL", "http://supabase.test")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")

from backoffice.core.auth import CurrentUser  # noqa: E402
from backoffice.core.config import get_settings  # noqa: E402
from backoffice.core.remote import SupabaseClient  # noqa: E402

Handler = Callable[[httpx.Request], httpx.Response]
Route = Union[Handler, Tuple[int, Any]]


class FakeSupabase:
    """
    In-memory stand-in for the Supabase HTTP API, used as an httpx transport
    handler. Routes match on method + longest path prefix and every request
    is recorded, so tests can assert exactly which remote calls were made.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Route] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def on(self, method: str, path: str, status: int = 200, json: Any = None, handler: Optional[Handler] = None):
        self.routes[(method, path)] = handler if handler is not None else (status, json)
        return self

    def calls(self, method: str, prefix: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.startswith(prefix)]

    def _match(self, request: httpx.Request) -> Optional[Route]:
        candidates = [
            (path, route)
            for (method, path), route in self.routes.items()
            if method == request.method and request.url.path.startswith(path)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda c: len(c[0]))[1]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            # Yield so concurrently issued requests overlap.
            await asyncio.sleep(0.01)
            route = self._match(request)
            if route is None:
                return httpx.Response(500, json={"message": f"no fake route for {request.method} {request.url.path}"})
            if callable(route):
                return route(request)
            status, body = route
            return httpx.Response(status, json=body)
        finally:
            self.in_flight -= 1


def body_of(request: httpx.Request) -> Any:
    return json.loads(request.content)


def product_row(**overrides: Any) -> Dict[str, Any]:
    row = {
        "id": "p1",
        "name": "Soap",
        "presentation_type": "box",
        "units_per_presentation": 12,
        "is_active": True,
        "reorder_level": 5,
        "reorder_quantity": 20,
        "product_prices": {
            "id": "pp1",
            "product_id": "p1",
            "purchase_price_box": 10,
            "purchase_price_unit": 1,
            "sale_price_box": 15,
            "sale_price_unit": 1.5,
        },
        "product_images": [],
    }
    row.update(overrides)
    return row


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def fake() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def make_client(fake: FakeSupabase) -> Callable[[], SupabaseClient]:
    def _make() -> SupabaseClient:
        return SupabaseClient.from_settings(
            get_settings(),
            access_token="user-token",
            transport=httpx.MockTransport(fake),
        )

    return _make


@pytest.fixture
def user() -> CurrentUser:
    return CurrentUser(id="user-1", email="owner@example.com", access_token="user-token", claims={"sub": "user-1"})


@pytest.fixture
def api(fake: FakeSupabase, make_client, user: CurrentUser):
    """TestClient with auth and the Supabase client replaced."""
    from fastapi.testclient import TestClient

    from backoffice.core.auth import get_current_user
    from backoffice.core.deps import get_client
    from backoffice.main import app

    async def _client():
        client = make_client()
        try:
            yield client
        finally:
            await client.aclose()

    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_client] = _client
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
