from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Literal, Optional

# LEVIRO storefront schemas. Cart, order and customer records keep the
# camelCase field names the storefront stores them under.

Size = Literal["S", "M", "L", "XL", "XXL"]
SIZES: tuple[str, ...] = ("S", "M", "L", "XL", "XXL")

OrderStatus = Literal["Pending", "Delivered"]
ToastType = Literal["success", "error", "info"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductDraft(BaseModel):
    name: str
    price: float = Field(ge=0)
    description: str = ""
    image: str = ""
    sizes: list[Size] = Field(default_factory=list)


class Product(ProductDraft):
    id: str


class ProductPatch(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    image: Optional[str] = None
    sizes: Optional[list[Size]] = None


class CartItem(CamelModel):
    id: str
    product_id: str
    name: str
    price: float
    image: str = ""
    size: Size
    quantity: int = Field(ge=1, default=1)


class CustomerInfo(CamelModel):
    name: str = ""
    mobile: str = ""
    district: str = ""
    thana: str = ""
    address: str = ""
    payment_method: str = "cod"


class Order(CamelModel):
    id: str
    customer: CustomerInfo
    items: list[CartItem]
    total: float
    status: OrderStatus = "Pending"
    created_at: str


class Toast(BaseModel):
    id: str
    message: str
    type: ToastType = "success"


class AdminCredentials(BaseModel):
    username: str
    password: str


class CredentialsUpdate(CamelModel):
    current_username: str = ""
    current_password: str = ""
    new_username: str = ""
    new_password: str = ""
    confirm_password: str = ""
