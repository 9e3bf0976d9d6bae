"""
Per-browser state.

Every shopper gets a ``Session`` of their own: a cart saved in its own
key-value store, a toast list, the checkout-in-flight guard and session flags
such as the admin login. Nothing in a session is visible to another one.
"""
from __future__ import annotations
import logging
import uuid
from typing import Callable, Optional

from schemas import CartItem, Product
from storage import KeyValueStore, MemoryKeyValueStore
from toasts import Toaster

logger = logging.getLogger(__name__)

CART_KEY = "cart"


class Cart:
    def __init__(self, kv: KeyValueStore):
        self.kv = kv
        self.items: list[CartItem] = self._load()

    def _load(self) -> list[CartItem]:
        try:
            return [CartItem.model_validate(item) for item in self.kv.get_json(CART_KEY, [])]
        except (OSError, ValueError) as e:
            logger.warning("Discarding unreadable saved cart: %s", e)
            return []

    def save(self) -> None:
        try:
            self.kv.set_json(CART_KEY, [item.model_dump(by_alias=True) for item in self.items])
        except OSError:
            logger.exception("Could not save the cart")

    def add(self, product: Product, size: str) -> CartItem:
        if size not in product.sizes:
            raise ValueError(f"{product.name} is not available in size {size}")

        for item in self.items:
            if item.product_id == product.id and item.size == size:
                item.quantity += 1
                self.save()
                return item

        line = CartItem(
            id=uuid.uuid4().hex,
            product_id=product.id,
            name=product.name,
            price=product.price,
            image=product.image,
            size=size,
            quantity=1,
        )
        self.items.append(line)
        self.save()
        return line

    def remove(self, item_id: str) -> bool:
        remaining = [item for item in self.items if item.id != item_id]
        if len(remaining) == len(self.items):
            return False
        self.items = remaining
        self.save()
        return True

    def update_quantity(self, item_id: str, quantity: int) -> bool:
        if quantity <= 0:
            return self.remove(item_id)
        for item in self.items:
            if item.id == item_id:
                item.quantity = quantity
                self.save()
                return True
        return False

    def clear(self) -> None:
        self.items = []
        self.save()

    def total(self) -> float:
        return sum(item.price * item.quantity for item in self.items)

    def count(self) -> int:
        return sum(item.quantity for item in self.items)


class Session:
    def __init__(
        self,
        cart: Cart,
        toaster: Toaster,
        flags: Optional[KeyValueStore] = None,
        id: Optional[str] = None,
    ):
        self.id = id or uuid.uuid4().hex
        self.cart = cart
        self.toaster = toaster
        self.flags = flags if flags is not None else MemoryKeyValueStore()
        self.placing_order = False


class SessionRegistry:
    """Sessions by id, created on first use."""

    def __init__(self, factory: Callable[[str], Session]):
        self.factory = factory
        self._sessions: dict[str, Session] = {}

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._sessions[session_id] = self.factory(session_id)
            logger.debug("Opened session %s", session_id)
        return session

    def __len__(self) -> int:
        return len(self._sessions)

    def close(self) -> None:
        for session in self._sessions.values():
            session.toaster.clear()
        self._sessions.clear()
