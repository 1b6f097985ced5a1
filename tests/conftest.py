"""
Shared test fixtures and configuration for rotate service tests.
"""
import json
from io import BytesIO

import httpx
import pytest
from flask import Flask
from flask.testing import FlaskClient
from PIL import Image
from tenacity import RetryCallState, Retrying

from rotate_service import create_app
from rotate_service.config import TestingConfig, WorkflowSettings
from rotate_service.utils.retry import Clock, RetryPolicy


SHOP_DOMAIN = "test-store.myshopify.com"
GRAPHQL_URL = f"https://{SHOP_DOMAIN}/admin/api/2024-07/graphql.json"


class FakeClock(Clock):
    """Records sleeps instead of waiting."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.current = start
        self.sleeps: list[float] = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds

    def now(self) -> float:
        return self.current


def make_config(**overrides) -> type:
    return type("OverrideConfig", (TestingConfig,), overrides)


@pytest.fixture
def app() -> Flask:
    """Create and configure a test Flask application instance (sync mode)."""
    app = create_app(TestingConfig)
    yield app
    app.extensions["rotate_job_runner"].shutdown(wait=True)


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create a Flask test client."""
    return app.test_client()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> WorkflowSettings:
    """Settings with the production delays: 180s pre-delay, 4 attempts 60s apart."""
    return WorkflowSettings(
        shopify_store_domain=SHOP_DOMAIN,
        shopify_admin_token="test_shopify_token",
        pre_delay_seconds=180,
        retry_policy=RetryPolicy(max_attempts=4, delay_seconds=60),
    )


@pytest.fixture
def shopify_client(fake_clock):
    """Create a ShopifyClient instance for testing."""
    from rotate_service.services.shopify_client import ShopifyClient
    return ShopifyClient(
        store_domain=SHOP_DOMAIN,
        admin_token="test_shopify_token",
        api_version="2024-07",
        clock=fake_clock,
        file_poll_attempts=2,
        file_poll_interval=1.0,
    )


@pytest.fixture
def sample_png_bytes() -> bytes:
    """A 4x2 PNG with distinct pixels so rotations are observable."""
    return create_test_png(4, 2)


@pytest.fixture
def sample_job_payload() -> dict:
    return {
        "image_url": "https://x/img.png",
        "product_id": 42,
        "metafield_namespace": "custom",
        "metafield_key": "design_link",
        "rotation": 90,
    }


# Helper functions for tests

def create_test_png(width: int = 4, height: int = 2, mode: str = "RGBA") -> bytes:
    img = Image.new(mode, (width, height))
    for x in range(width):
        for y in range(height):
            value = (x * 40 + y * 7) % 256
            img.putpixel((x, y), (value, 255 - value, (x * y * 13) % 256, 255)[: len(mode)])
    buf = BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()


def graphql_operation(request: httpx.Request) -> str:
    """Name of the GraphQL operation in a request, e.g. 'metafieldsSet'."""
    query = json.loads(request.content)["query"]
    header = query.strip().split("(")[0].split("{")[0]
    return header.split()[-1]


def graphql_variables(request: httpx.Request) -> dict:
    return json.loads(request.content)["variables"]


def graphql_responder(responses: dict):
    """respx side effect answering each GraphQL operation with a canned body.

    Values may be a dict (returned every time) or a list of dicts (returned in order).
    """
    def _side_effect(request: httpx.Request):
        op = graphql_operation(request)
        body = responses[op]
        if isinstance(body, list):
            body = body.pop(0)
        return httpx.Response(200, json=body)
    return _side_effect


def metafields_set_ok(value: str = "https://cdn/x.png") -> dict:
    return {
        "data": {
            "metafieldsSet": {
                "metafields": [{
                    "id": "gid://shopify/Metafield/1",
                    "namespace": "custom",
                    "key": "design_link",
                    "value": value,
                    "type": "single_line_text_field",
                }],
                "userErrors": [],
            }
        }
    }


def order_edit_responses(line_item_gid: str = "gid://shopify/LineItem/555") -> dict:
    return {
        "orderEditBegin": {
            "data": {
                "orderEditBegin": {
                    "calculatedOrder": {
                        "id": "gid://shopify/CalculatedOrder/9",
                        "lineItems": {
                            "edges": [
                                {"node": {"id": "gid://shopify/CalculatedLineItem/1",
                                          "originalLineItem": {"id": "gid://shopify/LineItem/111"}}},
                                {"node": {"id": "gid://shopify/CalculatedLineItem/2",
                                          "originalLineItem": {"id": line_item_gid}}},
                            ]
                        },
                    },
                    "userErrors": [],
                }
            }
        },
        "orderEditSetLineItemProperties": {
            "data": {
                "orderEditSetLineItemProperties": {
                    "calculatedOrder": {"id": "gid://shopify/CalculatedOrder/9"},
                    "userErrors": [],
                }
            }
        },
        "orderEditCommit": {
            "data": {
                "orderEditCommit": {
                    "order": {"id": "gid://shopify/Order/777"},
                    "userErrors": [],
                }
            }
        },
    }


def retry_waits(policy: RetryPolicy, attempts: int = 3) -> list[float]:
    """Seconds the policy's tenacity wait strategy gives after each failed attempt."""
    wait = policy.wait()
    waits = []
    for n in range(1, attempts + 1):
        state = RetryCallState(Retrying(), fn=None, args=(), kwargs={})
        state.attempt_number = n
        waits.append(wait(state))
    return waits
