from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from bookgarden.extensions import db
from bookgarden.models import Address, User


def _find(name: str, phone: str, address: str) -> Address | None:
    return Address.query.filter_by(name=name, phone=phone, address=address).first()


def resolve_address(name: str, phone: str, address: str) -> Address:
    """Return the address row for the exact (name, phone, address) triple, creating it once."""
    existing = _find(name, phone, address)
    if existing is not None:
        return existing
    row = Address(name=name, phone=phone, address=address)
    try:
        with db.session.begin_nested():
            db.session.add(row)
    except IntegrityError:
        # Another request inserted the same triple first.
        winner = _find(name, phone, address)
        if winner is None:
            raise
        return winner
    return row


def link_address(user: User, address: Address) -> bool:
    if any(int(a.id) == int(address.id) for a in (user.addresses or [])):
        return False
    user.addresses.append(address)
    return True
