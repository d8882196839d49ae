"""
Product Reference -- read-only view of the product catalog.

The catalog itself (categories, sizes, pricing) lives outside the ledger.
The ledger only needs to know whether a product exists and is active.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

from inventory_ledger.exceptions import ProductInactiveError, ProductNotFoundError


@dataclass(frozen=True)
class ProductInfo:
    """Immutable snapshot of a catalog product."""

    id: int
    code: str
    is_active: bool = True
    category: str | None = None


class ProductReference(ABC):
    """
    Abstract product lookup.

    Contract:
        ``get_product`` returns a ProductInfo or None; it never raises for
        unknown ids.
    """

    @abstractmethod
    def get_product(self, product_id: int) -> ProductInfo | None:
        ...

    def require_active(self, product_id: int) -> ProductInfo:
        """
        Return the product, or raise if it is unknown or inactive.

        Raises:
            ProductNotFoundError: Unknown product id.
            ProductInactiveError: Product exists but is deactivated.
        """
        product = self.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        if not product.is_active:
            raise ProductInactiveError(product.id, product.code)
        return product


class StaticProductReference(ProductReference):
    """In-memory product reference for scripts and tests."""

    def __init__(self, products: Iterable[ProductInfo] = ()):
        self._products: dict[int, ProductInfo] = {p.id: p for p in products}

    def get_product(self, product_id: int) -> ProductInfo | None:
        return self._products.get(product_id)

    def add(self, product: ProductInfo) -> None:
        self._products[product.id] = product
