"""
The storefront state container.

A ``Store`` owns the product catalog and the order history, and is the only
place that mutates them. Products and orders are written through a
``Persistence``: the remote database once it has answered a read this
session, local storage otherwise. Every persistent mutation is applied in
memory only after the backend has confirmed it.

Carts and toasts belong to a ``Session``. Operations that touch them take the
session to act on; without one they use the store's own ``session``, which
keeps its cart in the ``kv`` store passed in.
"""
from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from persistence import Persistence, PersistenceError, default_products
from schemas import CartItem, CustomerInfo, Order, OrderStatus, Product, ProductDraft, ProductPatch, Toast, ToastType
from sessions import Cart, Session
from storage import KeyValueStore
from toasts import Toaster

logger = logging.getLogger(__name__)

Listener = Callable[["Store"], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def order_id_for(moment: datetime) -> str:
    millis = str(round(moment.timestamp() * 1000))
    return f"ORD-{millis[-6:]}"


class Store:
    def __init__(
        self,
        remote: Persistence,
        local: Persistence,
        kv: KeyValueStore,
        toaster: Optional[Toaster] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.remote = remote
        self.local = local
        self.kv = kv
        self.toaster = toaster or Toaster()
        self.toaster.on_change = self._notify
        self.clock = clock

        self.products: list[Product] = []
        self.orders: list[Order] = []
        self.session = Session(Cart(kv), self.toaster)

        self.loading = True
        self.is_connected = False
        self.persistence: Persistence = local

        self._listeners: list[Listener] = []

    def new_session(self, cart_kv: KeyValueStore, session_id: Optional[str] = None) -> Session:
        toaster = Toaster(self.toaster.duration_ms, on_change=self._notify)
        return Session(Cart(cart_kv), toaster, id=session_id)

    # Subscriptions

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # Startup

    async def load_initial_state(self) -> None:
        self.loading = True
        try:
            results = await asyncio.gather(
                self.remote.list_products(),
                self.remote.list_orders(),
                return_exceptions=True,
            )
            failures = [r for r in results if isinstance(r, BaseException)]
            for failure in failures:
                if not isinstance(failure, PersistenceError):
                    raise failure
            if failures:
                logger.warning("Remote storage unavailable: %s", failures[0])
                if not self.is_connected:
                    await self._load_local_state()
                return

            self.products, self.orders = results
            self.is_connected = True
            self.persistence = self.remote
            logger.info("Loaded %d products and %d orders from remote storage", len(self.products), len(self.orders))
        finally:
            self.loading = False
            self._notify()

    async def _load_local_state(self) -> None:
        self.persistence = self.local
        try:
            self.products = await self.local.list_products()
        except PersistenceError as e:
            logger.warning("Could not read saved products, using the sample catalog: %s", e)
            self.products = default_products()
        try:
            self.orders = await self.local.list_orders()
        except PersistenceError as e:
            logger.warning("Could not read saved orders: %s", e)
            self.orders = []
        logger.info("Working from local storage with %d products and %d orders", len(self.products), len(self.orders))

    # Toasts

    @property
    def toasts(self) -> list[Toast]:
        return self.session.toaster.toasts

    def show_toast(self, message: str, type: ToastType = "success", session: Optional[Session] = None) -> Toast:
        return (session or self.session).toaster.show(message, type)

    # Cart

    @property
    def cart(self) -> list[CartItem]:
        return self.session.cart.items

    def _cart_changed(self, changed: bool = True) -> None:
        if changed:
            self._notify()

    def add_to_cart(self, product: Product, size: str, session: Optional[Session] = None) -> CartItem:
        session = session or self.session
        line = session.cart.add(product, size)
        self._cart_changed()
        self.show_toast(f"{product.name} ({size}) added to cart", session=session)
        return line

    def remove_from_cart(self, item_id: str, session: Optional[Session] = None) -> None:
        self._cart_changed((session or self.session).cart.remove(item_id))

    def update_cart_quantity(self, item_id: str, quantity: int, session: Optional[Session] = None) -> None:
        self._cart_changed((session or self.session).cart.update_quantity(item_id, quantity))

    def clear_cart(self, session: Optional[Session] = None) -> None:
        (session or self.session).cart.clear()
        self._cart_changed()

    def get_cart_total(self, session: Optional[Session] = None) -> float:
        return (session or self.session).cart.total()

    def get_cart_count(self, session: Optional[Session] = None) -> int:
        return (session or self.session).cart.count()

    # Orders

    @property
    def placing_order(self) -> bool:
        return self.session.placing_order

    def get_order(self, order_id: str) -> Optional[Order]:
        return next((o for o in self.orders if o.id == order_id), None)

    async def place_order(self, customer: CustomerInfo, session: Optional[Session] = None) -> Optional[str]:
        session = session or self.session
        if session.placing_order:
            logger.warning("Rejected a checkout while another one is in flight")
            self.show_toast("Your order is already being processed", "info", session=session)
            return None

        session.placing_order = True
        try:
            now = self.clock()
            order = Order(
                id=order_id_for(now),
                customer=customer,
                items=[item.model_copy() for item in session.cart.items],
                total=session.cart.total(),
                status="Pending",
                created_at=now.isoformat(),
            )
            persistence = self.persistence
            try:
                await persistence.insert_order(order)
            except PersistenceError:
                logger.exception("Failed to place order %s", order.id)
                self.show_toast("Failed to place order. Please try again.", "error", session=session)
                return None

            if persistence.remote:
                try:
                    self.orders = await persistence.list_orders()
                except PersistenceError as e:
                    logger.warning("Order %s saved but the order list could not be refreshed: %s", order.id, e)
                    self.orders = [order, *self.orders]
            else:
                self.orders = [order, *self.orders]

            logger.info("Placed order %s (%d items, total %s)", order.id, len(order.items), order.total)
            self.clear_cart(session)
            self.show_toast("Order placed successfully! We will contact you shortly.", session=session)
            return order.id
        finally:
            session.placing_order = False

    async def update_order_status(
        self, order_id: str, status: OrderStatus, session: Optional[Session] = None
    ) -> bool:
        if self.get_order(order_id) is None:
            return False
        try:
            await self.persistence.update_order_status(order_id, status)
        except PersistenceError as e:
            logger.exception("Failed to update order %s", order_id)
            self.show_toast(f"Failed to update order status: {e}", "error", session=session)
            return False

        self.orders = [o.model_copy(update={"status": status}) if o.id == order_id else o for o in self.orders]
        self.show_toast(f"Order {order_id} marked as {status}", session=session)
        return True

    # Products

    def get_product(self, product_id: str) -> Optional[Product]:
        return next((p for p in self.products if p.id == product_id), None)

    async def add_product(self, draft: ProductDraft, session: Optional[Session] = None) -> Optional[Product]:
        try:
            product = await self.persistence.insert_product(draft)
        except PersistenceError as e:
            logger.exception("Failed to add product %r", draft.name)
            self.show_toast(f"Failed to add product: {e}", "error", session=session)
            return None

        self.products = [*self.products, product]
        logger.info("Added product %s", product.id)
        self.show_toast("Product added successfully", session=session)
        return product

    async def update_product(self, product_id: str, patch: ProductPatch, session: Optional[Session] = None) -> bool:
        if self.get_product(product_id) is None:
            return False
        try:
            updated = await self.persistence.update_product(product_id, patch)
        except PersistenceError as e:
            logger.exception("Failed to update product %s", product_id)
            self.show_toast(f"Failed to update product: {e}", "error", session=session)
            return False

        self.products = [updated if p.id == product_id else p for p in self.products]
        self.show_toast("Product updated successfully", session=session)
        return True

    async def delete_product(self, product_id: str, session: Optional[Session] = None) -> bool:
        if self.get_product(product_id) is None:
            return False
        persistence = self.persistence
        try:
            await persistence.delete_product(product_id)
        except PersistenceError as e:
            logger.exception("Failed to delete product %s", product_id)
            self.show_toast(f"Failed to delete product: {e}", "error", session=session)
            return False

        self.products = [p for p in self.products if p.id != product_id]
        message = "Product deleted" if persistence.remote else "Product deleted (local only)"
        self.show_toast(message, session=session)
        return True
