from __future__ import annotations
import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from starlette.middleware.sessions import SessionMiddleware

from auth import AdminAuth
from database import close_db, get_db
from logging_config import configure_logging
from persistence import LocalPersistence, RemotePersistence
from schemas import (
    AdminCredentials,
    CamelModel,
    CartItem,
    CredentialsUpdate,
    CustomerInfo,
    Order,
    OrderStatus,
    Product,
    ProductDraft,
    ProductPatch,
    Toast,
)
from sessions import Session, SessionRegistry
from settings import Settings, get_settings
from storage import FileKeyValueStore, MemoryKeyValueStore
from store import Store
from toasts import Toaster
from validation import sort_sizes, validate_checkout, validate_product

logger = logging.getLogger(__name__)

SESSION_ID_KEY = "sid"


def build_store(settings: Settings) -> tuple[Store, AdminAuth, SessionRegistry]:
    kv = FileKeyValueStore(settings.STORAGE_DIR, settings.STORAGE_PREFIX)
    store = Store(
        remote=RemotePersistence(get_db(settings)),
        local=LocalPersistence(kv),
        kv=kv,
        toaster=Toaster(settings.TOAST_DURATION_MS),
    )
    default = AdminCredentials(username=settings.ADMIN_USERNAME, password=settings.ADMIN_PASSWORD)

    def open_session(session_id: str) -> Session:
        # Each browser's cart gets its own file next to the shared data
        cart_kv = FileKeyValueStore(settings.STORAGE_DIR, f"{settings.STORAGE_PREFIX}{session_id}_")
        return store.new_session(cart_kv, session_id)

    return store, AdminAuth(store, default), SessionRegistry(open_session)


def memory_sessions(store: Store) -> SessionRegistry:
    return SessionRegistry(lambda session_id: store.new_session(MemoryKeyValueStore(), session_id))


def create_app(
    store: Optional[Store] = None,
    auth: Optional[AdminAuth] = None,
    settings: Optional[Settings] = None,
    sessions: Optional[SessionRegistry] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_db = app.state.store is None
        if owns_db:
            app.state.store, app.state.auth, app.state.sessions = build_store(settings)
        elif app.state.sessions is None:
            app.state.sessions = memory_sessions(app.state.store)
        await app.state.store.load_initial_state()
        await app.state.auth.load()
        logger.info("Store ready (connected=%s)", app.state.store.is_connected)
        yield
        if owns_db:
            app.state.sessions.close()
            app.state.store.toaster.clear()
            close_db()

    app = FastAPI(title="LEVIRO Store API", lifespan=lifespan)
    app.state.store = store
    app.state.auth = auth
    app.state.sessions = sessions

    # Allow all origins for dev preview
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET,
        session_cookie=settings.SESSION_COOKIE,
        same_site="lax",
    )

    _register_routes(app)
    return app


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_auth(request: Request) -> AdminAuth:
    return request.app.state.auth


def get_session(request: Request) -> Session:
    session_id = request.session.get(SESSION_ID_KEY)
    if session_id is None:
        session_id = request.session[SESSION_ID_KEY] = uuid.uuid4().hex
    return request.app.state.sessions.get(session_id)


def require_admin(auth: AdminAuth = Depends(get_auth), session: Session = Depends(get_session)) -> Session:
    if not auth.is_logged_in(session):
        raise HTTPException(status_code=401, detail="Admin login required")
    return session


class CartAdd(CamelModel):
    product_id: str
    size: str


class QuantityUpdate(BaseModel):
    quantity: int


class CartOut(BaseModel):
    items: list[CartItem]
    total: float
    count: int


class OrderOut(BaseModel):
    id: str


class StatusUpdate(BaseModel):
    status: OrderStatus


class LoginRequest(BaseModel):
    username: str
    password: str


def _cart_out(session: Session) -> CartOut:
    return CartOut(items=session.cart.items, total=session.cart.total(), count=session.cart.count())


def _register_routes(app: FastAPI) -> None:

    @app.get("/")
    async def root():
        return {"message": "LEVIRO Backend Running"}

    @app.get("/test")
    async def test(store: Store = Depends(get_store)):
        return {
            "backend": "✅ Running",
            "database": "✅ Connected" if store.is_connected else "⚠️ Local storage only",
            "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
            "connection_status": "Connected" if store.is_connected else "Not Connected",
            "loading": store.loading,
        }

    # Storefront

    @app.get("/products", response_model=list[Product])
    async def list_products(store: Store = Depends(get_store)):
        return store.products

    @app.get("/products/{product_id}", response_model=Product)
    async def get_product(product_id: str, store: Store = Depends(get_store)):
        product = store.get_product(product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return product

    @app.get("/cart", response_model=CartOut)
    async def get_cart(session: Session = Depends(get_session)):
        return _cart_out(session)

    @app.post("/cart", response_model=CartOut)
    async def add_to_cart(
        payload: CartAdd, store: Store = Depends(get_store), session: Session = Depends(get_session)
    ):
        product = store.get_product(payload.product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        try:
            store.add_to_cart(product, payload.size, session)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _cart_out(session)

    @app.put("/cart/{item_id}", response_model=CartOut)
    async def update_cart_item(
        item_id: str,
        payload: QuantityUpdate,
        store: Store = Depends(get_store),
        session: Session = Depends(get_session),
    ):
        store.update_cart_quantity(item_id, payload.quantity, session)
        return _cart_out(session)

    @app.delete("/cart/{item_id}", response_model=CartOut)
    async def remove_cart_item(item_id: str, store: Store = Depends(get_store), session: Session = Depends(get_session)):
        store.remove_from_cart(item_id, session)
        return _cart_out(session)

    @app.delete("/cart", response_model=CartOut)
    async def clear_cart(store: Store = Depends(get_store), session: Session = Depends(get_session)):
        store.clear_cart(session)
        return _cart_out(session)

    @app.post("/checkout", response_model=OrderOut)
    async def checkout(
        customer: CustomerInfo, store: Store = Depends(get_store), session: Session = Depends(get_session)
    ):
        errors = validate_checkout(customer)
        if errors:
            raise HTTPException(status_code=422, detail=errors)
        if not session.cart.items:
            raise HTTPException(status_code=409, detail="Cart is empty")
        if session.placing_order:
            raise HTTPException(status_code=409, detail="Your order is already being processed")
        order_id = await store.place_order(customer, session)
        if order_id is None:
            raise HTTPException(status_code=502, detail="Failed to place order. Please try again.")
        return OrderOut(id=order_id)

    @app.get("/toasts", response_model=list[Toast])
    async def list_toasts(session: Session = Depends(get_session)):
        return session.toaster.toasts

    # Admin

    @app.post("/admin/login")
    async def login(payload: LoginRequest, auth: AdminAuth = Depends(get_auth), session: Session = Depends(get_session)):
        if not auth.login(session, payload.username, payload.password):
            raise HTTPException(status_code=401, detail="Invalid credentials")
        return {"ok": True}

    @app.post("/admin/logout")
    async def logout(auth: AdminAuth = Depends(get_auth), session: Session = Depends(get_session)):
        auth.logout(session)
        return {"ok": True}

    @app.post("/admin/sync", dependencies=[Depends(require_admin)])
    async def sync(store: Store = Depends(get_store), auth: AdminAuth = Depends(get_auth)):
        await store.load_initial_state()
        # Credentials live in whichever backend the store now writes to
        await auth.load()
        return {"connected": store.is_connected}

    @app.get("/admin/orders", response_model=list[Order], dependencies=[Depends(require_admin)])
    async def list_orders(store: Store = Depends(get_store)):
        return store.orders

    @app.put("/admin/orders/{order_id}/status", response_model=Order)
    async def update_order_status(
        order_id: str,
        payload: StatusUpdate,
        store: Store = Depends(get_store),
        session: Session = Depends(require_admin),
    ):
        if store.get_order(order_id) is None:
            raise HTTPException(status_code=404, detail="Order not found")
        if not await store.update_order_status(order_id, payload.status, session):
            raise HTTPException(status_code=502, detail="Failed to update order status")
        return store.get_order(order_id)

    @app.post("/admin/products", response_model=Product)
    async def create_product(
        draft: ProductDraft, store: Store = Depends(get_store), session: Session = Depends(require_admin)
    ):
        errors = validate_product(draft)
        if errors:
            raise HTTPException(status_code=422, detail=errors)
        product = await store.add_product(draft.model_copy(update={"sizes": sort_sizes(draft.sizes)}), session)
        if product is None:
            raise HTTPException(status_code=502, detail="Failed to add product")
        return product

    @app.put("/admin/products/{product_id}", response_model=Product)
    async def update_product(
        product_id: str,
        patch: ProductPatch,
        store: Store = Depends(get_store),
        session: Session = Depends(require_admin),
    ):
        if store.get_product(product_id) is None:
            raise HTTPException(status_code=404, detail="Product not found")
        if patch.sizes is not None:
            patch = patch.model_copy(update={"sizes": sort_sizes(patch.sizes)})
        if not await store.update_product(product_id, patch, session):
            raise HTTPException(status_code=502, detail="Failed to update product")
        return store.get_product(product_id)

    @app.delete("/admin/products/{product_id}")
    async def delete_product(product_id: str, store: Store = Depends(get_store), session: Session = Depends(require_admin)):
        if store.get_product(product_id) is None:
            raise HTTPException(status_code=404, detail="Product not found")
        if not await store.delete_product(product_id, session):
            raise HTTPException(status_code=502, detail="Failed to delete product")
        return {"deleted": True}

    @app.put("/admin/credentials")
    async def update_credentials(
        form: CredentialsUpdate, auth: AdminAuth = Depends(get_auth), session: Session = Depends(require_admin)
    ):
        errors = await auth.update_credentials(form, session)
        if "form" in errors:
            raise HTTPException(status_code=502, detail=errors)
        if errors:
            raise HTTPException(status_code=422, detail=errors)
        return {"ok": True}


settings = get_settings()
configure_logging(settings)
app = create_app(settings=settings)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
