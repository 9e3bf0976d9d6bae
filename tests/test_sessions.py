"""Tests for per-browser carts and the session registry."""

import pytest

from sessions import CART_KEY, Cart, Session, SessionRegistry
from storage import MemoryKeyValueStore
from toasts import Toaster


@pytest.fixture
def cart(kv):
    return Cart(kv)


def test_add_merges_same_product_and_size(cart, panjabi):
    first = cart.add(panjabi, "M")
    again = cart.add(panjabi, "M")
    other = cart.add(panjabi, "L")

    assert first is again
    assert first.quantity == 2
    assert other.id != first.id
    assert cart.count() == 3
    assert cart.total() == 2850 * 3


def test_changes_are_saved(cart, kv, kurta):
    line = cart.add(kurta, "M")
    cart.update_quantity(line.id, 4)

    assert kv.get_json(CART_KEY)[0]["quantity"] == 4
    assert Cart(kv).items == cart.items


def test_remove_and_update_report_whether_anything_changed(cart, kurta):
    line = cart.add(kurta, "L")

    assert not cart.remove("missing")
    assert not cart.update_quantity("missing", 2)
    assert cart.update_quantity(line.id, 0)
    assert cart.items == []


def test_unreadable_blob_gives_empty_cart():
    kv = MemoryKeyValueStore()
    kv.set(CART_KEY, '[{"id": 1}]')

    assert Cart(kv).items == []


def test_registry_creates_each_session_once():
    opened = []

    def open_session(session_id):
        opened.append(session_id)
        return Session(Cart(MemoryKeyValueStore()), Toaster(), id=session_id)

    registry = SessionRegistry(open_session)

    a = registry.get("a")
    assert registry.get("a") is a
    b = registry.get("b")

    assert a is not b
    assert a.id == "a"
    assert opened == ["a", "b"]
    assert len(registry) == 2


async def test_close_clears_pending_toasts():
    toaster = Toaster(10_000)
    registry = SessionRegistry(lambda session_id: Session(Cart(MemoryKeyValueStore()), toaster, id=session_id))
    registry.get("a").toaster.show("hello")

    registry.close()

    assert toaster.toasts == []
    assert len(registry) == 0
