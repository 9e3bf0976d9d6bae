"""
Storage backends for products, orders and admin credentials.

``RemotePersistence`` talks to the MongoDB collections through motor;
``LocalPersistence`` keeps the same records as JSON in a key-value store and
is used whenever the database could not be reached at startup. Both raise
``PersistenceError`` for every failure so callers handle one error type.
"""
from __future__ import annotations
import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from database import create_document, delete_document, get_documents, update_document, upsert_document
from schemas import AdminCredentials, CartItem, CustomerInfo, Order, Product, ProductDraft, ProductPatch
from storage import KeyValueStore

logger = logging.getLogger(__name__)

CREDENTIALS_ID = "admin_credentials"

# Sample catalog shown when nothing else is available
DEFAULT_PRODUCTS: list[dict] = [
    {
        "id": "1",
        "name": "Premium White Cotton Panjabi",
        "price": 2850,
        "description": "Crafted from the finest Egyptian cotton, this premium white Panjabi features intricate embroidery on the collar and cuffs. Perfect for weddings, Eid, and special occasions.",
        "image": "https://images.unsplash.com/photo-1594938298603-c8148c4dae35?w=800&q=80",
        "sizes": ["S", "M", "L", "XL", "XXL"],
    },
    {
        "id": "2",
        "name": "Royal Navy Blue Silk Panjabi",
        "price": 4250,
        "description": "A stunning navy blue Panjabi made from premium Indian silk. Features elegant gold thread work on the chest and collar. Ideal for formal events and celebrations.",
        "image": "https://images.unsplash.com/photo-1610030469983-98e550d6193c?w=800&q=80",
        "sizes": ["S", "M", "L", "XL"],
    },
    {
        "id": "3",
        "name": "Classic Cream Linen Panjabi",
        "price": 3150,
        "description": "A timeless cream-colored Panjabi crafted from breathable linen. Minimalist design with subtle texture, perfect for both casual and semi-formal occasions.",
        "image": "https://images.unsplash.com/photo-1583391733956-3750e0ff4e8b?w=800&q=80",
        "sizes": ["M", "L", "XL", "XXL"],
    },
]


def default_products() -> list[Product]:
    return [Product(**p) for p in DEFAULT_PRODUCTS]


class PersistenceError(Exception):
    """A storage backend could not complete an operation."""


@contextmanager
def _backend_call() -> Iterator[None]:
    try:
        yield
    except PersistenceError:
        raise
    except Exception as e:
        raise PersistenceError(str(e) or type(e).__name__) from e


class Persistence(ABC):
    remote: bool = False

    @abstractmethod
    async def list_products(self) -> list[Product]: ...

    @abstractmethod
    async def insert_product(self, draft: ProductDraft) -> Product: ...

    @abstractmethod
    async def update_product(self, product_id: str, patch: ProductPatch) -> Product: ...

    @abstractmethod
    async def delete_product(self, product_id: str) -> None: ...

    @abstractmethod
    async def list_orders(self) -> list[Order]: ...

    @abstractmethod
    async def insert_order(self, order: Order) -> None: ...

    @abstractmethod
    async def update_order_status(self, order_id: str, status: str) -> None: ...

    @abstractmethod
    async def get_credentials(self) -> Optional[AdminCredentials]: ...

    @abstractmethod
    async def save_credentials(self, credentials: AdminCredentials) -> None: ...


# Row mapping for the flat "orders" collection

def order_to_row(order: Order) -> dict[str, Any]:
    customer = order.customer
    return {
        "id": order.id,
        "customer_name": customer.name,
        "customer_mobile": customer.mobile,
        "customer_district": customer.district,
        "customer_thana": customer.thana,
        "customer_address": customer.address,
        "payment_method": customer.payment_method,
        "items": [item.model_dump(by_alias=True) for item in order.items],
        "total": order.total,
        "status": order.status,
        "created_at": datetime.fromisoformat(order.created_at),
    }


def order_from_row(row: dict[str, Any]) -> Order:
    created_at = row.get("created_at")
    if isinstance(created_at, datetime):
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        created_at = created_at.isoformat()
    return Order(
        id=row["id"],
        customer=CustomerInfo(
            name=row.get("customer_name", ""),
            mobile=row.get("customer_mobile", ""),
            district=row.get("customer_district", ""),
            thana=row.get("customer_thana", ""),
            address=row.get("customer_address", ""),
            payment_method=row.get("payment_method", "cod"),
        ),
        items=[CartItem.model_validate(item) for item in row.get("items", [])],
        total=float(row.get("total", 0)),
        status=row.get("status", "Pending"),
        created_at=created_at or "",
    )


class RemotePersistence(Persistence):
    remote = True

    PRODUCTS = "products"
    ORDERS = "orders"
    SETTINGS = "admin_settings"

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def list_products(self) -> list[Product]:
        with _backend_call():
            rows = await get_documents(self.db, self.PRODUCTS, sort=[("created_at", 1)])
            return [Product(**row) for row in rows]

    async def insert_product(self, draft: ProductDraft) -> Product:
        with _backend_call():
            row = await create_document(self.db, self.PRODUCTS, draft.model_dump())
            return Product(**row)

    async def update_product(self, product_id: str, patch: ProductPatch) -> Product:
        with _backend_call():
            row = await update_document(
                self.db, self.PRODUCTS, {"_id": ObjectId(product_id)}, patch.model_dump(exclude_none=True)
            )
            if row is None:
                raise PersistenceError(f"Product {product_id} not found")
            return Product(**row)

    async def delete_product(self, product_id: str) -> None:
        with _backend_call():
            deleted = await delete_document(self.db, self.PRODUCTS, {"_id": ObjectId(product_id)})
            if not deleted:
                raise PersistenceError(f"Product {product_id} not found")

    async def list_orders(self) -> list[Order]:
        with _backend_call():
            rows = await get_documents(self.db, self.ORDERS, sort=[("created_at", -1)])
            return [order_from_row(row) for row in rows]

    async def insert_order(self, order: Order) -> None:
        with _backend_call():
            await create_document(self.db, self.ORDERS, order_to_row(order))

    async def update_order_status(self, order_id: str, status: str) -> None:
        with _backend_call():
            row = await update_document(self.db, self.ORDERS, {"id": order_id}, {"status": status})
            if row is None:
                raise PersistenceError(f"Order {order_id} not found")

    async def get_credentials(self) -> Optional[AdminCredentials]:
        with _backend_call():
            rows = await get_documents(self.db, self.SETTINGS, {"id": CREDENTIALS_ID}, limit=1)
            if not rows:
                return None
            return AdminCredentials(username=rows[0]["username"], password=rows[0]["password"])

    async def save_credentials(self, credentials: AdminCredentials) -> None:
        with _backend_call():
            await upsert_document(
                self.db, self.SETTINGS, {"id": CREDENTIALS_ID}, {"id": CREDENTIALS_ID, **credentials.model_dump()}
            )


class LocalPersistence(Persistence):
    PRODUCTS = "products"
    ORDERS = "orders"
    CREDENTIALS = "admin_credentials"

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def _load_products(self) -> list[Product]:
        saved = self.kv.get_json(self.PRODUCTS)
        if saved is None:
            logger.debug("No saved products, using the sample catalog")
            return default_products()
        return [Product(**p) for p in saved]

    def _save_products(self, products: list[Product]) -> None:
        self.kv.set_json(self.PRODUCTS, [p.model_dump() for p in products])

    def _load_orders(self) -> list[Order]:
        return [Order.model_validate(o) for o in self.kv.get_json(self.ORDERS, [])]

    def _save_orders(self, orders: list[Order]) -> None:
        self.kv.set_json(self.ORDERS, [o.model_dump(by_alias=True) for o in orders])

    async def list_products(self) -> list[Product]:
        with _backend_call():
            return self._load_products()

    async def insert_product(self, draft: ProductDraft) -> Product:
        with _backend_call():
            products = self._load_products()
            taken = {p.id for p in products}
            stamp = time.time_ns() // 1_000_000
            while str(stamp) in taken:
                stamp += 1
            product = Product(id=str(stamp), **draft.model_dump())
            products.append(product)
            self._save_products(products)
            return product

    async def update_product(self, product_id: str, patch: ProductPatch) -> Product:
        with _backend_call():
            products = self._load_products()
            for i, product in enumerate(products):
                if product.id == product_id:
                    products[i] = product.model_copy(update=patch.model_dump(exclude_none=True))
                    self._save_products(products)
                    return products[i]
            raise PersistenceError(f"Product {product_id} not found")

    async def delete_product(self, product_id: str) -> None:
        with _backend_call():
            products = self._load_products()
            remaining = [p for p in products if p.id != product_id]
            if len(remaining) == len(products):
                raise PersistenceError(f"Product {product_id} not found")
            self._save_products(remaining)

    async def list_orders(self) -> list[Order]:
        with _backend_call():
            return self._load_orders()

    async def insert_order(self, order: Order) -> None:
        with _backend_call():
            self._save_orders([order, *self._load_orders()])

    async def update_order_status(self, order_id: str, status: str) -> None:
        with _backend_call():
            orders = self._load_orders()
            for i, order in enumerate(orders):
                if order.id == order_id:
                    orders[i] = order.model_copy(update={"status": status})
                    self._save_orders(orders)
                    return
            raise PersistenceError(f"Order {order_id} not found")

    async def get_credentials(self) -> Optional[AdminCredentials]:
        with _backend_call():
            saved = self.kv.get_json(self.CREDENTIALS)
            return AdminCredentials(**saved) if saved else None

    async def save_credentials(self, credentials: AdminCredentials) -> None:
        with _backend_call():
            self.kv.set_json(self.CREDENTIALS, credentials.model_dump())
