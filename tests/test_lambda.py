from __future__ import annotations

import base64
import json
from collections.abc import Iterator

import pytest

from payrelay.config import Settings
from payrelay.gateway import SimulatedGateway
from payrelay.runtime import open_runtime
from payrelay.wire.lambda_handler import LambdaAdapter

BODY = {"user_id": "u1", "amount": 500, "feature_id": "hd-render", "artifact_ref": "s3://renders/o1.png"}


def event(method: str, path: str, body: dict | None = None, headers: dict | None = None) -> dict:
    return {
        "httpMethod": method,
        "path": path,
        "headers": headers or {},
        "body": json.dumps(body) if body is not None else None,
        "isBase64Encoded": False,
    }


@pytest.fixture
def sim() -> SimulatedGateway:
    return SimulatedGateway()


@pytest.fixture
def adapter(tmp_path, sim: SimulatedGateway) -> Iterator[LambdaAdapter]:
    settings = Settings(_env_file=None, database_url=f"sqlite+aiosqlite:///{tmp_path / 'lambda.db'}")
    handler = LambdaAdapter(lambda: open_runtime(settings, gateway=sim))
    yield handler
    handler.close()


def test_settle_and_replay_across_invocations(adapter: LambdaAdapter, sim: SimulatedGateway) -> None:
    first = adapter(event("POST", "/orders/o1/settle", BODY))
    second = adapter(event("POST", "/orders/o1/settle", BODY))

    assert first["statusCode"] == 200
    assert json.loads(first["body"])["receipt"] == json.loads(second["body"])["receipt"]
    assert json.loads(second["body"])["from_cache"] is True
    assert sim.charges["o1"] == 1


def test_retryable_failure_sets_retry_after(adapter: LambdaAdapter, sim: SimulatedGateway) -> None:
    sim.script("o1", "unavailable")

    resp = adapter(event("POST", "/orders/o1/settle", BODY, headers={"x-attempt": "1"}))

    assert resp["statusCode"] == 503
    assert resp["headers"]["Retry-After"] == "1"


def test_base64_body(adapter: LambdaAdapter) -> None:
    raw = base64.b64encode(json.dumps(BODY).encode()).decode()
    ev = {**event("POST", "/orders/o1/settle"), "body": raw, "isBase64Encoded": True}

    assert adapter(ev)["statusCode"] == 200


def test_bad_requests(adapter: LambdaAdapter) -> None:
    assert adapter(event("POST", "/orders/o1/settle", {"amount": 5}))["statusCode"] == 422
    assert adapter(event("POST", "/orders/o1/settle", BODY, headers={"X-Attempt": "x"}))["statusCode"] == 422
    assert adapter(event("DELETE", "/orders/o1"))["statusCode"] == 404


def test_status_health_and_at_risk(adapter: LambdaAdapter) -> None:
    assert adapter(event("GET", "/health"))["statusCode"] == 200
    assert adapter(event("GET", "/orders/o1"))["statusCode"] == 404

    adapter(event("POST", "/orders/o1/settle", BODY))

    status = adapter(event("GET", "/orders/o1"))
    assert json.loads(status["body"])["status"] == "paid"
    at_risk = adapter(event("GET", "/reconciliation/at-risk"))
    assert json.loads(at_risk["body"])["count"] == 0


@pytest.mark.parametrize("raw", ["not base64!", base64.b64encode(b"\xff\xfe\x00").decode()])
def test_undecodable_base64_body_is_rejected(adapter: LambdaAdapter, raw: str) -> None:
    ev = {**event("POST", "/orders/o1/settle"), "body": raw, "isBase64Encoded": True}

    resp = adapter(ev)

    assert resp["statusCode"] == 422
    assert "base64" in json.loads(resp["body"])["detail"]


def test_huge_attempt_number_caps_retry_after(adapter: LambdaAdapter, sim: SimulatedGateway) -> None:
    sim.script("o1", "unavailable")

    resp = adapter(event("POST", "/orders/o1/settle", BODY, headers={"x-attempt": "5000"}))

    assert resp["statusCode"] == 503
    assert resp["headers"]["Retry-After"] == "30"
    assert json.loads(resp["body"])["prompt_retry"] is True


def test_event_loop_opens_on_first_invocation(tmp_path, sim: SimulatedGateway) -> None:
    settings = Settings(_env_file=None, database_url=f"sqlite+aiosqlite:///{tmp_path / 'lazy.db'}")
    handler = LambdaAdapter(lambda: open_runtime(settings, gateway=sim))

    assert handler._loop is None
    handler.close()

    assert handler(event("GET", "/health"))["statusCode"] == 200
    assert handler._loop is not None

    handler.close()
    assert handler._loop is None
    assert handler(event("POST", "/orders/o1/settle", BODY))["statusCode"] == 200
    handler.close()
