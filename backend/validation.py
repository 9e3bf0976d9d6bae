from __future__ import annotations
import re
from typing import Iterable

from schemas import SIZES, CustomerInfo, ProductDraft

DISTRICTS: list[str] = [
    "Dhaka", "Chattogram", "Sylhet", "Rajshahi", "Khulna",
    "Barishal", "Rangpur", "Mymensingh", "Comilla", "Gazipur",
    "Narayanganj", "Cox's Bazar", "Bogura", "Jessore", "Dinajpur",
]

MOBILE_RE = re.compile(r"^(\+880|0)?1[3-9]\d{8}$")


def is_valid_mobile(mobile: str) -> bool:
    return bool(MOBILE_RE.match(re.sub(r"\s", "", mobile)))


def validate_checkout(customer: CustomerInfo) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not customer.name.strip():
        errors["name"] = "Name is required"
    if not customer.mobile.strip():
        errors["mobile"] = "Mobile number is required"
    elif not is_valid_mobile(customer.mobile):
        errors["mobile"] = "Enter a valid Bangladeshi mobile number"
    if customer.district not in DISTRICTS:
        errors["district"] = "Please select a district"
    if not customer.thana.strip():
        errors["thana"] = "Thana/Upazila is required"
    if not customer.address.strip():
        errors["address"] = "Full address is required"
    return errors


def validate_product(draft: ProductDraft) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not draft.name.strip():
        errors["name"] = "Product name is required"
    if draft.price <= 0:
        errors["price"] = "Valid price is required"
    if not draft.description.strip():
        errors["description"] = "Description is required"
    if not draft.image:
        errors["image"] = "Product image is required"
    if not draft.sizes:
        errors["sizes"] = "Select at least one size"
    return errors


def sort_sizes(sizes: Iterable[str]) -> list[str]:
    return sorted(set(sizes), key=SIZES.index)
