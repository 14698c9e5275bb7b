# Overview: User directory collaborator (who to notify).

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import User, WishlistEntry


@dataclass(frozen=True)
class CustomerContact:
    email: str
    first_name: str
    last_name: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


def find_customer_contact(user_id: int) -> CustomerContact | None:
    user = db.session.get(User, user_id)
    if user is None or not user.email:
        return None
    return CustomerContact(email=user.email, first_name=user.first_name or "", last_name=user.last_name or "")


def find_customer_by_email(tenant_id: int, email: str) -> User | None:
    return db.session.query(User).filter_by(tenant_id=tenant_id, email=email.strip().lower()).first()


def wishlist_subscribers(tenant_id: int, product_id: int) -> list[User]:
    """Customers watching a product who have notifications enabled."""
    return (
        db.session.query(User)
        .join(WishlistEntry, WishlistEntry.user_id == User.id)
        .filter(
            WishlistEntry.tenant_id == tenant_id,
            WishlistEntry.product_id == product_id,
            User.notifications_enabled.is_(True),
        )
        .order_by(User.id)
        .all()
    )
