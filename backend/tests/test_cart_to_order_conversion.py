from __future__ import annotations

import unittest

from bookgarden.errors import FORBIDDEN, INVALID_REFERENCE, INVALID_REQUEST, NOT_FOUND
from bookgarden.extensions import db
from bookgarden.models import Address, AuditEvent, Book, CartItem, Notification, Order, OrderItem, User
from bookgarden.services.order_checkout_service import create_order
from order_fixtures import OrderAppTestCase


class CartToOrderConversionTestCase(OrderAppTestCase):
    def setUp(self):
        super().setUp()
        self.user = self._user("customer", name="Buyer")

    def _payload(self, cart_ids, **extra):
        payload = {
            "full_name": "Ada Reader",
            "phone": "0800000001",
            "address": "12 Library Lane",
            "payment_method": "COD",
            "cart_items": list(cart_ids),
        }
        payload.update(extra)
        return payload

    def test_two_books_become_two_items(self):
        book_a = self._book(stock=5, price=10.0, title="A")
        book_b = self._book(stock=3, price=4.5, title="B")
        line_a = self._cart_item(self.user, book_a.id, 2)
        line_b = self._cart_item(self.user, book_b.id, 1)

        result = create_order(self.user.id, self._payload([line_a.id, line_b.id]))

        self.assertTrue(result.ok, result.message)
        self.assertEqual(result.status_code, 201)
        self.assertEqual(result.data["status"], "PENDING")
        self.assertEqual(result.data["payment_status"], "NOT_PAID")
        self.assertEqual([i["book_id"] for i in result.data["order_items"]], [book_a.id, book_b.id])
        self.assertEqual([i["quantity"] for i in result.data["order_items"]], [2, 1])
        self.assertAlmostEqual(result.data["total_price"], 24.5)

        db.session.expire_all()
        a = db.session.get(Book, book_a.id)
        b = db.session.get(Book, book_b.id)
        self.assertEqual((a.stock, a.sold_quantity), (3, 2))
        self.assertEqual((b.stock, b.sold_quantity), (2, 1))
        self.assertEqual(CartItem.query.filter_by(user_id=self.user.id).count(), 0)

        note = Notification.query.filter_by(user_id=self.user.id).one()
        self.assertEqual(note.title, "Order placed")

    def test_missing_book_rolls_back_everything(self):
        book = self._book(stock=5)
        good = self._cart_item(self.user, book.id, 1)
        orphan = self._cart_item(self.user, 999999, 1)

        result = create_order(self.user.id, self._payload([good.id, orphan.id]))

        self.assertFalse(result.ok)
        self.assertEqual(result.error, NOT_FOUND)
        db.session.expire_all()
        self.assertEqual(Order.query.count(), 0)
        self.assertEqual(OrderItem.query.count(), 0)
        self.assertEqual(CartItem.query.count(), 2)
        self.assertEqual(Address.query.count(), 0)
        stored = db.session.get(Book, book.id)
        self.assertEqual((stored.stock, stored.sold_quantity), (5, 0))

    def test_foreign_cart_item_is_forbidden(self):
        other = self._user("customer", name="Other")
        book = self._book()
        theirs = self._cart_item(other, book.id, 1)
        result = create_order(self.user.id, self._payload([theirs.id]))
        self.assertEqual(result.error, FORBIDDEN)
        self.assertEqual(CartItem.query.count(), 1)

    def test_unknown_cart_item(self):
        result = create_order(self.user.id, self._payload([424242]))
        self.assertEqual(result.error, NOT_FOUND)

    def test_empty_cart_list(self):
        result = create_order(self.user.id, self._payload([]))
        self.assertEqual(result.error, INVALID_REFERENCE)

    def test_malformed_cart_reference(self):
        result = create_order(self.user.id, self._payload(["abc"]))
        self.assertEqual(result.error, INVALID_REFERENCE)

    def test_missing_shipping_fields(self):
        book = self._book()
        line = self._cart_item(self.user, book.id, 1)
        result = create_order(self.user.id, self._payload([line.id], phone=""))
        self.assertEqual(result.error, INVALID_REQUEST)

    def test_unknown_user(self):
        result = create_order(555555, self._payload([1]))
        self.assertEqual(result.error, NOT_FOUND)

    def test_address_is_deduplicated_and_linked_once(self):
        book = self._book(stock=10)
        first = create_order(self.user.id, self._payload([self._cart_item(self.user, book.id, 1).id]))
        second = create_order(self.user.id, self._payload([self._cart_item(self.user, book.id, 1).id]))
        self.assertTrue(first.ok and second.ok)
        self.assertEqual(Address.query.count(), 1)
        self.assertEqual(first.data["address"]["id"], second.data["address"]["id"])
        db.session.expire_all()
        self.assertEqual(len(db.session.get(User, self.user.id).addresses), 1)

    def test_different_address_text_creates_new_row(self):
        book = self._book(stock=10)
        create_order(self.user.id, self._payload([self._cart_item(self.user, book.id, 1).id]))
        create_order(self.user.id, self._payload([self._cart_item(self.user, book.id, 1).id], address="13 Library Lane"))
        self.assertEqual(Address.query.count(), 2)

    def test_oversell_is_allowed_and_flagged(self):
        book = self._book(stock=1)
        line = self._cart_item(self.user, book.id, 3)
        result = create_order(self.user.id, self._payload([line.id]))
        self.assertTrue(result.ok)
        db.session.expire_all()
        self.assertEqual(db.session.get(Book, book.id).stock, -2)
        event = AuditEvent.query.filter_by(event_type="stock_oversold").one()
        self.assertEqual(event.severity, "WARNING")

    def test_online_payment_method_is_kept(self):
        book = self._book()
        line = self._cart_item(self.user, book.id, 1)
        result = create_order(self.user.id, self._payload([line.id], payment_method="online"))
        self.assertEqual(result.data["payment_method"], "ONLINE")


if __name__ == "__main__":
    unittest.main()
