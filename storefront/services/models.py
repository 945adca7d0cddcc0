"""Database Models - Pydantic models for catalog and cart rows."""
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator

from storefront.services.money import to_decimal as _to_decimal


class Product(BaseModel):
    """Product model (row of the `products` table)."""
    id: str
    name: str
    price: Decimal
    stock_quantity: Optional[int] = None  # None when the catalog does not track stock
    image_url: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None

    class Config:
        extra = "ignore"  # Ignore unknown fields from DB

    @field_validator("id", mode="before")
    @classmethod
    def convert_id_to_str(cls, v):
        return str(v)

    @field_validator("price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v)

    @field_validator("price")
    @classmethod
    def check_price(cls, v):
        if v < 0:
            raise ValueError("price must be non-negative")
        return v

    @field_validator("stock_quantity", mode="before")
    @classmethod
    def normalize_stock(cls, v):
        if v is None:
            return None
        return max(int(v), 0)

    @field_validator("category", mode="before")
    @classmethod
    def flatten_category(cls, v):
        # select("*, categories(name)") returns {"name": ...}
        if isinstance(v, dict):
            return v.get("name")
        return v


class CartRow(BaseModel):
    """Row of the `cart` table as seen by one user."""
    product_id: str
    quantity: int

    class Config:
        extra = "ignore"

    @field_validator("product_id", mode="before")
    @classmethod
    def convert_id_to_str(cls, v):
        return str(v)
