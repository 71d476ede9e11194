# tests/test_github_webhook.py
"""Tests for the HTTP surface: health check, GitHub webhook validation and hook dispatch."""
from __future__ import annotations

import json
import re

import pytest
from fastapi.testclient import TestClient

from conftest import PREFIX_RE, encode, github_headers, repository_payload, sign, spy_handler
from taskhook.runtime import TaskRuntime
from taskhook.transport.github_webhook import SIGNATURE_MISMATCH, sign_payload, verify_signature


def _runtime(base_logger, test_settings, secret: str = "foobar") -> TaskRuntime:
    return TaskRuntime(base_logger, secret, settings=test_settings)


# ============================================================================
# Signature helpers
# ============================================================================

class TestSignature:
    def test_sign_payload_matches_github_format(self):
        body = b'{"zen": "Keep it logically awesome."}'
        assert sign_payload("foobar", body) == sign("foobar", body)
        assert sign_payload("foobar", body).startswith("sha1=")

    def test_valid_signature(self):
        body = b"lorem ipsum"
        assert verify_signature("foo", body, sign("foo", body)) is True

    def test_wrong_secret(self):
        body = b"lorem ipsum"
        assert verify_signature("foo", body, sign("bar", body)) is False

    def test_tampered_body(self):
        assert verify_signature("foo", b"lorem ipsum!", sign("foo", b"lorem ipsum")) is False

    def test_wrong_algorithm_prefix(self):
        body = b"lorem ipsum"
        digest = sign("foo", body).split("=", 1)[1]
        assert verify_signature("foo", body, f"sha256={digest}") is False


# ============================================================================
# Routing
# ============================================================================

class TestRoutes:
    def test_health_check(self, base_logger, test_settings):
        client = TestClient(_runtime(base_logger, test_settings).app)
        resp = client.get("/_health")
        assert resp.status_code == 200
        assert resp.text == "OK"

    def test_unknown_path(self, base_logger, test_settings):
        client = TestClient(_runtime(base_logger, test_settings).app)
        resp = client.post("/notexisting")
        assert resp.status_code == 404
        assert resp.text == "No such endpoint"

    def test_get_on_webhook_path(self, base_logger, test_settings):
        client = TestClient(_runtime(base_logger, test_settings).app)
        resp = client.get("/")
        assert resp.status_code == 404
        assert resp.text == "No such endpoint"

    def test_docs_are_not_served(self, base_logger, test_settings):
        client = TestClient(_runtime(base_logger, test_settings).app)
        assert client.get("/docs").status_code == 404

    def test_request_id_header(self, base_logger, test_settings):
        client = TestClient(_runtime(base_logger, test_settings).app)
        resp = client.get("/_health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"


# ============================================================================
# Validation
# ============================================================================

class TestWebhookValidation:
    def test_invalid_secret(self, base_logger, test_settings):
        runtime = _runtime(base_logger, test_settings, secret="foo")
        client = TestClient(runtime.app)

        resp = client.post("/", headers=github_headers("bar", b"lorem ipsum", "push"))

        assert resp.status_code == 400
        assert resp.json() == {"error": SIGNATURE_MISMATCH}
        assert resp.json() == {"error": "X-Hub-Signature does not match blob signature"}

    def test_mismatch_never_reaches_handlers(self, base_logger, test_settings):
        runtime = _runtime(base_logger, test_settings, secret="foo")
        handler = spy_handler()
        runtime.add_hook(events="push", handler=handler)
        body = encode(repository_payload("bar/baz"))

        resp = TestClient(runtime.app).post("/", content=body, headers=github_headers("bar", body, "push"))

        assert resp.status_code == 400
        handler.func.assert_not_called()
        assert runtime.metrics()["counters"] == {"webhook_rejections_total{reason=signature}": 1}

    @pytest.mark.parametrize("missing, message", [
        ("X-Hub-Signature", "No X-Hub-Signature found on request"),
        ("X-Github-Event", "No X-Github-Event found on request"),
        ("X-Github-Delivery", "No X-Github-Delivery found on request"),
    ])
    def test_missing_headers(self, base_logger, test_settings, missing, message):
        body = encode(repository_payload("bar/baz"))
        headers = github_headers("foobar", body, "push")
        del headers[missing]

        resp = TestClient(_runtime(base_logger, test_settings).app).post("/", content=body, headers=headers)

        assert resp.status_code == 400
        assert resp.json() == {"error": message}

    def test_invalid_json_body(self, base_logger, test_settings):
        body = b"not json"
        resp = TestClient(_runtime(base_logger, test_settings).app).post(
            "/", content=body, headers=github_headers("foobar", body, "push"),
        )
        assert resp.status_code == 400
        assert "error" in resp.json()


# ============================================================================
# Dispatch
# ============================================================================

class TestWebhookDispatch:
    def _post(self, runtime: TaskRuntime, payload: dict, event: str = "push", secret: str = "foobar"):
        body = encode(payload)
        client = TestClient(runtime.app)
        return client.post("/", content=body, headers=github_headers(secret, body, event))

    def test_verified_delivery_returns_ok(self, base_logger, test_settings):
        resp = self._post(_runtime(base_logger, test_settings), repository_payload("bar/baz"))
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}

    def test_passes_arguments_and_payload(self, base_logger, test_settings):
        runtime = _runtime(base_logger, test_settings)
        handler = spy_handler()
        arguments = {"foo": "bar"}
        runtime.add_hook(handler=handler, events="push", repository="bar/baz", arguments=arguments)
        payload = repository_payload("bar/baz")

        resp = self._post(runtime, payload)

        assert resp.status_code == 200
        _, passed_arguments, passed_payload = handler.func.call_args.args
        assert passed_arguments is arguments
        assert passed_payload == payload

    def test_repository_mismatch_still_returns_200(self, base_logger, test_settings):
        runtime = _runtime(base_logger, test_settings)
        handler = spy_handler()
        runtime.add_hook(handler=handler, events="push", repository="foo/bar")

        resp = self._post(runtime, repository_payload("bar/baz"))

        assert resp.status_code == 200
        handler.func.assert_not_called()

    def test_wildcard_hooks_for_each_event(self, base_logger, test_settings):
        runtime = _runtime(base_logger, test_settings)
        handler = spy_handler()
        runtime.add_hook(handler=handler, events="push")
        runtime.add_hook(handler=handler, events="pull_request")

        self._post(runtime, repository_payload("bar/baz"), event="push")
        resp = self._post(runtime, repository_payload("bar/baz"), event="pull_request")

        assert resp.status_code == 200
        assert handler.func.call_count == 2

    def test_exact_and_wildcard_both_fire(self, base_logger, test_settings):
        runtime = _runtime(base_logger, test_settings)
        exact, wildcard, other = spy_handler("exact"), spy_handler("wildcard"), spy_handler("other")
        runtime.add_hook(handler=exact, events="push", repository="bar/baz")
        runtime.add_hook(handler=wildcard, events=["push"])
        runtime.add_hook(handler=other, events="issues")

        self._post(runtime, repository_payload("bar/baz"))

        exact.func.assert_called_once()
        wildcard.func.assert_called_once()
        other.func.assert_not_called()

    def test_handler_logs_are_prefixed(self, base_logger, test_settings):
        runtime = _runtime(base_logger, test_settings)

        def dummyHandler(logger, arguments, payload):
            logger.log("OK")
            logger.error("FAIL")

        runtime.add_hook(handler=dummyHandler, events="push", repository="bar/baz")
        resp = self._post(runtime, repository_payload("bar/baz"))

        assert resp.status_code == 200
        assert re.match(PREFIX_RE % ("dummyHandler", "OK"), base_logger.log.call_args.args[0])
        assert re.match(PREFIX_RE % ("dummyHandler", "FAIL"), base_logger.error.call_args.args[0])

    def test_payload_without_repository(self, base_logger, test_settings):
        runtime = _runtime(base_logger, test_settings)
        wildcard = spy_handler("wildcard")
        scoped = spy_handler("scoped")
        runtime.add_hook(handler=wildcard, events="ping")
        runtime.add_hook(handler=scoped, events="ping", repository="bar/baz")

        resp = self._post(runtime, {"zen": "Design for failure."}, event="ping")

        assert resp.status_code == 200
        wildcard.func.assert_called_once()
        scoped.func.assert_not_called()

    def test_rejected_coroutine_is_logged_not_returned(self, base_logger, test_settings):
        runtime = _runtime(base_logger, test_settings)

        async def dummyHandler(logger, arguments, payload):
            raise RuntimeError("Error")

        runtime.add_hook(handler=dummyHandler, events="push", repository="bar/baz")
        body = encode(repository_payload("bar/baz"))

        # Lifespan shutdown drains pending handler tasks
        with TestClient(runtime.app) as client:
            resp = client.post("/", content=body, headers=github_headers("foobar", body, "push"))

        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        base_logger.error.assert_called_once()
        assert re.match(PREFIX_RE % ("dummyHandler", "Error"), base_logger.error.call_args.args[0])

    def test_secret_read_from_settings(self, base_logger, test_settings):
        runtime = TaskRuntime(base_logger, settings=test_settings)
        handler = spy_handler()
        runtime.add_hook(handler=handler, events="push")

        resp = self._post(runtime, repository_payload("bar/baz"), secret=test_settings.webhook_secret)

        assert resp.status_code == 200
        handler.func.assert_called_once()

    def test_payload_is_parsed_json(self, base_logger, test_settings):
        runtime = _runtime(base_logger, test_settings)
        handler = spy_handler()
        runtime.add_hook(handler=handler, events="push")
        payload = {"repository": {"full_name": "bar/baz"}, "commits": [{"id": "abc"}]}

        self._post(runtime, payload)

        assert handler.func.call_args.args[2] == json.loads(encode(payload))
