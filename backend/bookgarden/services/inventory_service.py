from __future__ import annotations

from datetime import datetime

from bookgarden.errors import InvalidRequest, NotFound
from bookgarden.extensions import db
from bookgarden.models import Book, CartItem
from bookgarden.utils.events import log_event


def adjust_inventory(cart_items: list[CartItem]) -> list[tuple[CartItem, Book]]:
    """Move each cart line's quantity from stock into sold_quantity.

    Stock is not floored: an oversell is allowed and recorded as a warning event.
    Raises NotFound when a referenced book no longer exists; the caller's
    transaction then rolls back every adjustment already staged.
    """
    adjusted: list[tuple[CartItem, Book]] = []
    now = datetime.utcnow()
    for item in cart_items:
        quantity = int(item.quantity or 0)
        if quantity <= 0:
            raise InvalidRequest(f"Cart item {int(item.id)} has an invalid quantity")
        book = db.session.get(Book, int(item.book_id), with_for_update=True)
        if book is None:
            raise NotFound(f"Book {int(item.book_id)} not found")

        book.sold_quantity = int(book.sold_quantity or 0) + quantity
        book.stock = int(book.stock or 0) - quantity
        book.updated_at = now
        if book.stock < 0:
            log_event(
                "stock_oversold",
                subject_type="book",
                subject_id=int(book.id),
                severity="WARNING",
                metadata={"stock": int(book.stock), "quantity": quantity, "cart_item_id": int(item.id)},
            )
        adjusted.append((item, book))
    return adjusted
