"""Shared pytest fixtures for the store tests."""

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from bson import ObjectId
from pymongo.errors import ServerSelectionTimeoutError

from persistence import LocalPersistence, Persistence, PersistenceError
from schemas import AdminCredentials, CustomerInfo, Product
from storage import MemoryKeyValueStore
from store import Store
from toasts import Toaster

TOAST_MS = 50


class FakePersistence(Persistence):
    """In-memory remote backend; names in ``failing`` raise PersistenceError."""

    remote = True

    def __init__(self, products=None, orders=None):
        self.products = list(products or [])
        self.orders = list(orders or [])
        self.credentials = None
        self.failing: set[str] = set()
        self.calls: list[str] = []
        self._next_id = 100

    def fail(self, *operations):
        self.failing.update(operations)

    def _call(self, operation):
        self.calls.append(operation)
        if operation in self.failing or "*" in self.failing:
            raise PersistenceError(f"{operation} refused")

    async def list_products(self):
        self._call("list_products")
        return list(self.products)

    async def insert_product(self, draft):
        self._call("insert_product")
        self._next_id += 1
        product = Product(id=f"remote-{self._next_id}", **draft.model_dump())
        self.products.append(product)
        return product

    async def update_product(self, product_id, patch):
        self._call("update_product")
        for i, product in enumerate(self.products):
            if product.id == product_id:
                self.products[i] = product.model_copy(update=patch.model_dump(exclude_none=True))
                return self.products[i]
        raise PersistenceError(f"Product {product_id} not found")

    async def delete_product(self, product_id):
        self._call("delete_product")
        remaining = [p for p in self.products if p.id != product_id]
        if len(remaining) == len(self.products):
            raise PersistenceError(f"Product {product_id} not found")
        self.products = remaining

    async def list_orders(self):
        self._call("list_orders")
        return sorted(self.orders, key=lambda o: o.created_at, reverse=True)

    async def insert_order(self, order):
        self._call("insert_order")
        self.orders.append(order)

    async def update_order_status(self, order_id, status):
        self._call("update_order_status")
        for i, order in enumerate(self.orders):
            if order.id == order_id:
                self.orders[i] = order.model_copy(update={"status": status})
                return
        raise PersistenceError(f"Order {order_id} not found")

    async def get_credentials(self):
        self._call("get_credentials")
        return self.credentials

    async def save_credentials(self, credentials):
        self._call("save_credentials")
        self.credentials = credentials


class FakeCursor:
    def __init__(self, docs, error=None):
        self.docs = list(docs)
        self.error = error

    def sort(self, keys):
        for key, direction in reversed(keys):
            self.docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def limit(self, n):
        self.docs = self.docs[:n]
        return self

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        if self.error:
            raise self.error
        for doc in self.docs:
            yield dict(doc)


class FakeCollection:
    """Enough of a motor collection for the database helpers."""

    def __init__(self, database):
        self.database = database
        self.docs = []

    @staticmethod
    def _matches(doc, filter_dict):
        return all(doc.get(key) == value for key, value in filter_dict.items())

    def _check(self):
        if self.database.offline:
            raise ServerSelectionTimeoutError("localhost:27017: [Errno 111] Connection refused")

    def find(self, filter_dict=None):
        error = None
        if self.database.offline:
            error = ServerSelectionTimeoutError("localhost:27017: [Errno 111] Connection refused")
        return FakeCursor([d for d in self.docs if self._matches(d, filter_dict or {})], error)

    async def find_one(self, filter_dict):
        self._check()
        return next((dict(d) for d in self.docs if self._matches(d, filter_dict)), None)

    async def insert_one(self, data):
        self._check()
        doc = {"_id": ObjectId(), **data}
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def find_one_and_update(self, filter_dict, update, return_document=None):
        self._check()
        for doc in self.docs:
            if self._matches(doc, filter_dict):
                doc.update(update["$set"])
                return dict(doc)
        return None

    async def update_one(self, filter_dict, update, upsert=False):
        self._check()
        for doc in self.docs:
            if self._matches(doc, filter_dict):
                doc.update(update["$set"])
                return SimpleNamespace(matched_count=1)
        if upsert:
            self.docs.append({"_id": ObjectId(), **filter_dict, **update["$set"]})
        return SimpleNamespace(matched_count=0)

    async def delete_one(self, filter_dict):
        self._check()
        before = len(self.docs)
        self.docs = [d for d in self.docs if not self._matches(d, filter_dict)]
        return SimpleNamespace(deleted_count=before - len(self.docs))


class FakeDatabase:
    def __init__(self, offline=False):
        self.offline = offline
        self.collections = defaultdict(lambda: FakeCollection(self))

    def __getitem__(self, name):
        return self.collections[name]


class StepClock:
    """Returns a new instant, one second apart, on every call."""

    def __init__(self, start=datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
async def toaster():
    toaster = Toaster(TOAST_MS)
    yield toaster
    toaster.clear()


@pytest.fixture
def panjabi():
    return Product(
        id="p-1",
        name="Premium White Cotton Panjabi",
        price=2850,
        description="White cotton panjabi",
        image="https://example.com/white.jpg",
        sizes=["S", "M", "L", "XL", "XXL"],
    )


@pytest.fixture
def kurta():
    return Product(
        id="p-2",
        name="Linen Kurta",
        price=1000,
        description="Cream linen kurta",
        image="data:image/png;base64,iVBORw0KGgo=",
        sizes=["M", "L"],
    )


@pytest.fixture
def remote(panjabi, kurta):
    return FakePersistence(products=[panjabi, kurta])


@pytest.fixture
def local(kv):
    return LocalPersistence(kv)


@pytest.fixture
def store(remote, local, kv, toaster):
    return Store(remote=remote, local=local, kv=kv, toaster=toaster, clock=StepClock())


@pytest.fixture
async def connected_store(store):
    await store.load_initial_state()
    assert store.is_connected
    return store


@pytest.fixture
async def offline_store(store, remote):
    remote.fail("*")
    await store.load_initial_state()
    assert not store.is_connected
    return store


@pytest.fixture
def customer():
    return CustomerInfo(
        name="Rahim Uddin",
        mobile="01712345678",
        district="Dhaka",
        thana="Dhanmondi",
        address="House 12, Road 5",
    )


@pytest.fixture
def admin_credentials():
    return AdminCredentials(username="admin", password="1234")
