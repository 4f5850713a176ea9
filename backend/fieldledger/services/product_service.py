# Overview: Product directory lookups and catalogue provisioning.

from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from .concurrency import lock_for_update


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def require_product(product_id: int | None, *, lock: bool = False, field: str = "product_id") -> Product:
    """Load a product referenced by a ledger entry (missing or inactive -> ValidationError)."""
    if product_id is None:
        raise ValidationError(f"{field} is required", details={"field": field})
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ValidationError(f"Product {product_id} does not exist", details={"field": field})
    if not product.is_active:
        raise ValidationError(f"Product {product_id} is inactive", details={"field": field})
    return product


def create_product(
    *,
    name: str,
    sku: str | None = None,
    category: str | None = None,
    description: str | None = None,
    price_cents: int | None = None,
    stock: int = 0,
) -> Product:
    """Caller commits."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"field": "name"})
    if price_cents is not None and price_cents < 0:
        raise ValidationError("price_cents must be >= 0", details={"field": "price_cents"})
    if stock < 0:
        raise ValidationError("stock must be >= 0", details={"field": "stock"})
    if sku:
        sku = sku.strip().upper()
        if db.session.query(Product.id).filter_by(sku=sku).first():
            raise ValidationError(f"sku {sku} already exists", details={"field": "sku"})

    product = Product(
        name=name,
        sku=sku or None,
        category=category,
        description=description,
        price_cents=price_cents,
        stock=stock,
        is_active=True,
    )
    db.session.add(product)
    db.session.flush()
    return product


def list_products(*, active_only: bool = True) -> list[Product]:
    query = db.session.query(Product)
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(Product.name.asc()).all()
