from __future__ import annotations

import json
import os
import unittest
from types import SimpleNamespace
from unittest.mock import patch

from flask import Flask

from bookgarden.errors import INTERNAL, INVALID_REFERENCE, Forbidden, NotFound
from bookgarden.integrations.common import IntegrationMisconfiguredError
from bookgarden.integrations.realtime.factory import build_realtime_provider
from bookgarden.integrations.realtime.mock_provider import MockRealtimeProvider
from bookgarden.services import order_state_machine
from bookgarden.utils.capabilities import Capability, has_capability, require_capability
from bookgarden.utils.identifiers import parse_id, parse_id_list
from bookgarden.utils.jwt_utils import create_token, user_id_from_header
from bookgarden.utils.observability import init_sentry
from bookgarden.utils.order_settings import unpaid_order_timeout_minutes
from bookgarden.utils.results import operation
from order_fixtures import OrderAppTestCase


class CapabilityTestCase(unittest.TestCase):
    def test_staff_roles_manage_orders(self):
        for role in ("admin", "manager", "Manager "):
            self.assertTrue(has_capability(SimpleNamespace(role=role), Capability.MANAGE_ORDERS))
        self.assertFalse(has_capability(SimpleNamespace(role="customer"), Capability.MANAGE_ORDERS))
        self.assertFalse(has_capability(None, Capability.PLACE_ORDERS))

    def test_require_capability_raises(self):
        with self.assertRaises(Forbidden):
            require_capability(SimpleNamespace(role="customer"), Capability.RUN_ORDER_JOBS)


class IdentifierTestCase(unittest.TestCase):
    def test_parse_id(self):
        self.assertEqual(parse_id("42"), 42)
        self.assertEqual(parse_id(7), 7)
        for bad in (None, "", "x1", "-3", 0, True, "1.5"):
            with self.assertRaises(Exception) as ctx:
                parse_id(bad)
            self.assertEqual(ctx.exception.code, INVALID_REFERENCE)

    def test_parse_id_list_dedupes_in_order(self):
        self.assertEqual(parse_id_list([3, "1", 3, 2]), [3, 1, 2])


class SettingsAndTokensTestCase(unittest.TestCase):
    def test_timeout_clamped(self):
        with patch.dict(os.environ, {"UNPAID_ORDER_TIMEOUT_MINUTES": "0"}):
            self.assertEqual(unpaid_order_timeout_minutes(), 1)
        with patch.dict(os.environ, {"UNPAID_ORDER_TIMEOUT_MINUTES": "soon"}):
            self.assertEqual(unpaid_order_timeout_minutes(), 30)

    def test_token_round_trip(self):
        token = create_token(17)
        self.assertEqual(user_id_from_header(f"Bearer {token}"), 17)
        self.assertIsNone(user_id_from_header("Bearer not-a-token"))
        self.assertIsNone(user_id_from_header(""))

    def test_sentry_init_is_noop_without_dsn(self):
        app = Flask(__name__)
        with patch.dict(os.environ, {"SENTRY_DSN": ""}):
            init_sentry(app)

    def test_realtime_factory(self):
        with patch.dict(os.environ, {"REALTIME_PROVIDER": "mock"}):
            self.assertIsInstance(build_realtime_provider(), MockRealtimeProvider)
        with patch.dict(os.environ, {"REALTIME_PROVIDER": "redis", "REALTIME_REDIS_URL": "", "REDIS_URL": ""}):
            with self.assertRaises(IntegrationMisconfiguredError):
                build_realtime_provider()


class OperationBoundaryTestCase(OrderAppTestCase):
    def test_business_error_keeps_code(self):
        @operation("Failed")
        def lookup():
            raise NotFound("Order not found")

        result = lookup()
        self.assertEqual((result.error, result.status_code, result.message), ("NOT_FOUND", 404, "Order not found"))

    def test_unexpected_error_is_internal(self):
        @operation("Failed to do the thing")
        def explode():
            raise KeyError("boom")

        with self.assertLogs("bookgarden.utils.results", level="ERROR"):
            result = explode()
        self.assertEqual(result.error, INTERNAL)
        self.assertEqual(result.status_code, 500)
        self.assertEqual(result.message, "Failed to do the thing")

    def test_request_log_line_carries_order_context(self):
        customer = self._user()
        stranger = self._user(name="Stranger")
        order = self._order(customer)

        with self.assertLogs(self.app.logger, level="INFO") as logs:
            res = self.client.get(f"/api/orders/{order.id}", headers={**self._auth(stranger), "X-Request-Id": "rid-log-1"})
        self.assertEqual(res.status_code, 403)

        lines = [json.loads(r.getMessage()) for r in logs.records if r.name == self.app.logger.name and r.getMessage().startswith("{")]
        line = next(item for item in lines if item["request_id"] == "rid-log-1")
        self.assertEqual(line["order_id"], order.id)
        self.assertEqual(line["user_id"], stranger.id)
        self.assertEqual(line["error"], "FORBIDDEN")
        self.assertEqual(line["endpoint"], "orders_bp.get_order")

    def test_realtime_failure_does_not_break_transition(self):
        customer = self._user()
        manager = self._user("manager")
        order = self._order(customer)

        with patch.dict(os.environ, {"MOCK_REALTIME_FORCE_FAIL": "1"}):
            result = order_state_machine.request_transition(manager.id, order.id, "PROCESSING")
        self.assertTrue(result.ok)
        self.assertEqual(self.realtime.published, [])


if __name__ == "__main__":
    unittest.main()
