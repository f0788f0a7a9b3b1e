from __future__ import annotations

import os
import time
import unittest
from datetime import datetime

from bookgarden import create_app
from bookgarden.extensions import db
from bookgarden.integrations.realtime import get_realtime_provider, reset_realtime_provider
from bookgarden.models import Book, CartItem, Order, OrderItem, User
from bookgarden.utils import cache_layer
from bookgarden.utils.jwt_utils import create_token

_ENV_OVERRIDES = {
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "DATABASE_URL": "sqlite:///:memory:",
    "REALTIME_PROVIDER": "mock",
    "ENABLE_CACHE": "0",
    "CLIENT_HOST": "http://bookgarden.test",
}


class OrderAppTestCase(unittest.TestCase):
    """Fresh in-memory schema per test, one Flask app per test class."""

    @classmethod
    def setUpClass(cls):
        cls._prev_env = {key: os.getenv(key) for key in _ENV_OVERRIDES}
        os.environ.update(_ENV_OVERRIDES)
        cls.app = create_app({"TESTING": True})
        cls.client = cls.app.test_client()

    @classmethod
    def tearDownClass(cls):
        for key, value in cls._prev_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    def setUp(self):
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.drop_all()
        db.create_all()
        reset_realtime_provider()
        cache_layer._reset_cache_state_for_tests()
        self.realtime = get_realtime_provider()

    def tearDown(self):
        db.session.remove()
        self.ctx.pop()
        reset_realtime_provider()

    def _user(self, role: str = "customer", name: str = "Reader") -> User:
        stamp = time.time_ns()
        user = User(full_name=name, email=f"{role}-{stamp}@bookgarden.test", role=role, phone=f"09{stamp % 10**8:08d}")
        db.session.add(user)
        db.session.commit()
        return user

    def _book(self, *, stock: int = 10, price: float = 12.5, title: str = "A Book") -> Book:
        book = Book(title=title, price=price, stock=stock, sold_quantity=0)
        db.session.add(book)
        db.session.commit()
        return book

    def _cart_item(self, user: User, book_id: int, quantity: int = 1) -> CartItem:
        item = CartItem(user_id=int(user.id), book_id=int(book_id), quantity=quantity)
        db.session.add(item)
        db.session.commit()
        return item

    def _order(
        self,
        user: User,
        *,
        status: str = "PENDING",
        payment_method: str = "COD",
        payment_status: str = "NOT_PAID",
        order_date: datetime | None = None,
        book: Book | None = None,
    ) -> Order:
        now = datetime.utcnow()
        order = Order(
            user_id=int(user.id),
            status=status,
            payment_method=payment_method,
            payment_status=payment_status,
            order_date=order_date or now,
            updated_at=now,
        )
        if book is not None:
            order.items.append(OrderItem(book_id=int(book.id), quantity=1, unit_price=float(book.price), position=0))
        db.session.add(order)
        db.session.commit()
        return order

    def _auth(self, user: User) -> dict:
        return {"Authorization": f"Bearer {create_token(int(user.id))}"}

    def _reload(self, order_id: int) -> Order:
        db.session.expire_all()
        return db.session.get(Order, int(order_id))
