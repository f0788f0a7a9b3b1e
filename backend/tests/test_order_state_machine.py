from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import update

from bookgarden.errors import CONFLICT, FORBIDDEN, INVALID_TRANSITION, NOT_FOUND
from bookgarden.extensions import db
from bookgarden.models import Notification, Order, OrderTransition
from bookgarden.services import order_state_machine
from bookgarden.services.order_state_machine import OrderStatus, can_transition, normalize_status
from order_fixtures import OrderAppTestCase

EXPECTED_EDGES = {
    ("PENDING", "PROCESSING"),
    ("PENDING", "CANCELLED"),
    ("PROCESSING", "DELIVERING"),
    ("PROCESSING", "CANCELLED"),
    ("DELIVERING", "DELIVERED"),
    ("DELIVERING", "CANCELLED"),
}


class TransitionTableTestCase(unittest.TestCase):
    def test_generic_table_closure(self):
        for current in OrderStatus.ALL:
            for target in OrderStatus.ALL:
                self.assertEqual(
                    can_transition(current, target),
                    (current, target) in EXPECTED_EDGES,
                    f"{current}->{target}",
                )

    def test_receipt_edge_only_from_delivered(self):
        for current in OrderStatus.ALL:
            for target in OrderStatus.ALL:
                self.assertEqual(
                    can_transition(current, target, receipt=True),
                    (current, target) == ("DELIVERED", "CONFIRMED"),
                )

    def test_normalize_status(self):
        self.assertEqual(normalize_status(" processing "), "PROCESSING")
        self.assertIsNone(normalize_status("SHIPPED"))
        self.assertIsNone(normalize_status(None))


class StaffTransitionTestCase(OrderAppTestCase):
    def setUp(self):
        super().setUp()
        self.customer = self._user("customer")
        self.manager = self._user("manager", name="Manager")

    def test_every_pair_through_request_transition(self):
        for current in OrderStatus.ALL:
            for target in OrderStatus.ALL:
                order = self._order(self.customer, status=current)
                result = order_state_machine.request_transition(self.manager.id, order.id, target)
                stored = self._reload(order.id)
                if (current, target) in EXPECTED_EDGES:
                    self.assertTrue(result.ok, f"{current}->{target}: {result.message}")
                    self.assertEqual(stored.status, target)
                else:
                    self.assertFalse(result.ok, f"{current}->{target}")
                    self.assertEqual(result.error, INVALID_TRANSITION)
                    self.assertEqual(stored.status, current)

    def test_customer_cannot_use_staff_update(self):
        order = self._order(self.customer)
        result = order_state_machine.request_transition(self.customer.id, order.id, "PROCESSING")
        self.assertEqual(result.error, FORBIDDEN)
        self.assertEqual(result.status_code, 403)
        self.assertEqual(self._reload(order.id).status, "PENDING")

    def test_unknown_status_string(self):
        order = self._order(self.customer)
        result = order_state_machine.request_transition(self.manager.id, order.id, "SHIPPED")
        self.assertEqual(result.error, INVALID_TRANSITION)

    def test_unknown_order(self):
        result = order_state_machine.request_transition(self.manager.id, 987654, "PROCESSING")
        self.assertEqual(result.error, NOT_FOUND)
        self.assertEqual(result.status_code, 404)

    def test_delivered_forces_paid_and_notifies_owner(self):
        order = self._order(self.customer, status="DELIVERING", payment_method="COD")
        result = order_state_machine.request_transition(self.manager.id, order.id, "DELIVERED")
        self.assertTrue(result.ok)
        stored = self._reload(order.id)
        self.assertEqual(stored.payment_status, "PAID")
        self.assertIsNotNone(stored.payment_date)

        note = Notification.query.filter_by(user_id=self.customer.id).one()
        self.assertEqual(note.link, "http://bookgarden.test/profile/order-history")
        self.assertIn("DELIVERED", note.message)
        self.assertEqual(len(self.realtime.published), 1)
        self.assertEqual(self.realtime.published[0]["topic"], f"/topic/notifications/{self.customer.id}")

        fields = sorted(t.field for t in OrderTransition.query.filter_by(order_id=order.id).all())
        self.assertEqual(fields, ["payment_status", "status"])

    def test_rejected_transition_does_not_notify(self):
        order = self._order(self.customer, status="CANCELLED")
        order_state_machine.request_transition(self.manager.id, order.id, "PROCESSING")
        self.assertEqual(Notification.query.count(), 0)
        self.assertEqual(self.realtime.published, [])

    def test_concurrent_write_is_reported_as_conflict(self):
        order = self._order(self.customer)
        real_loader = order_state_machine.load_order_for_update

        def load_then_race(order_id):
            loaded = real_loader(order_id)
            db.session.execute(
                update(Order)
                .where(Order.id == loaded.id)
                .values(version=Order.version + 1)
                .execution_options(synchronize_session=False)
            )
            return loaded

        with patch.object(order_state_machine, "load_order_for_update", side_effect=load_then_race):
            result = order_state_machine.request_transition(self.manager.id, order.id, "PROCESSING")

        self.assertFalse(result.ok)
        self.assertEqual(result.error, CONFLICT)
        self.assertEqual(result.status_code, 409)
        self.assertEqual(self._reload(order.id).status, "PENDING")


class CustomerActionsTestCase(OrderAppTestCase):
    def setUp(self):
        super().setUp()
        self.owner = self._user("customer", name="Owner")
        self.stranger = self._user("customer", name="Stranger")
        self.admin = self._user("admin", name="Admin")

    def test_owner_cancels_pending_order(self):
        order = self._order(self.owner)
        result = order_state_machine.customer_cancel(self.owner.id, order.id)
        self.assertTrue(result.ok)
        self.assertEqual(result.data["status"], "CANCELLED")
        self.assertEqual(Notification.query.count(), 0)

    def test_non_owner_cancel_is_forbidden(self):
        order = self._order(self.owner)
        result = order_state_machine.customer_cancel(self.stranger.id, order.id)
        self.assertEqual(result.error, FORBIDDEN)
        self.assertEqual(self._reload(order.id).status, "PENDING")

    def test_cancel_after_processing_rejected(self):
        order = self._order(self.owner, status="PROCESSING")
        result = order_state_machine.customer_cancel(self.owner.id, order.id)
        self.assertEqual(result.error, INVALID_TRANSITION)
        self.assertEqual(self._reload(order.id).status, "PROCESSING")

    def test_delivered_order_scenario(self):
        order = self._order(self.owner, status="DELIVERED", payment_status="PAID")

        staff_attempt = order_state_machine.request_transition(self.admin.id, order.id, "CANCELLED")
        self.assertEqual(staff_attempt.error, INVALID_TRANSITION)
        customer_attempt = order_state_machine.customer_cancel(self.owner.id, order.id)
        self.assertEqual(customer_attempt.error, INVALID_TRANSITION)
        self.assertEqual(self._reload(order.id).status, "DELIVERED")

        confirmed = order_state_machine.customer_confirm_receipt(self.owner.id, order.id)
        self.assertTrue(confirmed.ok)
        self.assertEqual(self._reload(order.id).status, "CONFIRMED")

    def test_staff_cannot_confirm_through_generic_update(self):
        order = self._order(self.owner, status="DELIVERED", payment_status="PAID")
        result = order_state_machine.request_transition(self.admin.id, order.id, "CONFIRMED")
        self.assertEqual(result.error, INVALID_TRANSITION)

    def test_confirm_receipt_requires_delivered(self):
        order = self._order(self.owner, status="DELIVERING")
        result = order_state_machine.customer_confirm_receipt(self.owner.id, order.id)
        self.assertEqual(result.error, INVALID_TRANSITION)

    def test_confirm_receipt_by_stranger_forbidden(self):
        order = self._order(self.owner, status="DELIVERED", payment_status="PAID")
        result = order_state_machine.customer_confirm_receipt(self.stranger.id, order.id)
        self.assertEqual(result.error, FORBIDDEN)
        self.assertEqual(self._reload(order.id).status, "DELIVERED")


if __name__ == "__main__":
    unittest.main()
