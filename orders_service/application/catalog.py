"""Product lookups used when pricing a cart.

Two sources are supported: the ``products`` table of this service's own
database, or the products microservice over HTTP. Stock levels always come
from the local ``inventory`` table because that is where reservations happen.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from orders_service.domain.models import Inventory, Product
from orders_service.errors import ExternalServiceError


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    name: str
    sku: str
    price: Decimal
    is_active: bool = True
    image: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "product_id": self.id,
            "name": self.name,
            "sku": self.sku,
            "price": str(self.price),
            "image": self.image,
        }


class ProductCatalog(Protocol):
    def get_product(self, product_id: int) -> Optional[ProductSnapshot]:
        ...

    def available_quantity(self, product_id: int) -> Optional[int]:
        ...


def _local_stock(db: Session, product_id: int) -> Optional[int]:
    return db.scalar(select(Inventory.quantity).where(Inventory.product_id == product_id))


class DatabaseProductCatalog:
    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> Optional[ProductSnapshot]:
        product = self.db.get(Product, product_id)
        if product is None:
            return None
        return ProductSnapshot(
            id=product.id,
            name=product.name,
            sku=product.sku,
            price=Decimal(product.price),
            is_active=product.is_active,
            image=product.image_url,
        )

    def available_quantity(self, product_id: int) -> Optional[int]:
        return _local_stock(self.db, product_id)


class HttpProductCatalog:
    """Resolves products against the products service (``GET /products/{id}``)."""

    def __init__(self, db: Session, base_url: str, client: Optional[httpx.Client] = None, timeout: float = 5.0):
        self.db = db
        self.base_url = base_url.rstrip("/")
        self._client = client
        self.timeout = timeout

    def _get(self, path: str) -> httpx.Response:
        if self._client is not None:
            return self._client.get(f"{self.base_url}{path}")
        with httpx.Client(timeout=self.timeout) as client:
            return client.get(f"{self.base_url}{path}")

    def get_product(self, product_id: int) -> Optional[ProductSnapshot]:
        try:
            response = self._get(f"/products/{product_id}")
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Products service unreachable: {e}", service="products") from e
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise ExternalServiceError(
                f"Products service returned {response.status_code}", service="products"
            )
        data = response.json()
        return ProductSnapshot(
            id=data["id"],
            name=data["name"],
            sku=data["sku"],
            price=Decimal(str(data["price"])),
            is_active=data.get("is_active", True),
            image=data.get("image_url") or data.get("image"),
        )

    def available_quantity(self, product_id: int) -> Optional[int]:
        return _local_stock(self.db, product_id)
