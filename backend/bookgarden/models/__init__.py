from bookgarden.models.address import Address
from bookgarden.models.audit_event import AuditEvent
from bookgarden.models.book import Book
from bookgarden.models.cart_item import CartItem
from bookgarden.models.job_run import JobRun
from bookgarden.models.notification import Notification
from bookgarden.models.order import Order, OrderItem
from bookgarden.models.order_transition import OrderTransition
from bookgarden.models.payment_callback import PaymentCallback
from bookgarden.models.user import User, user_addresses

__all__ = [
    "Address",
    "AuditEvent",
    "Book",
    "CartItem",
    "JobRun",
    "Notification",
    "Order",
    "OrderItem",
    "OrderTransition",
    "PaymentCallback",
    "User",
    "user_addresses",
]
