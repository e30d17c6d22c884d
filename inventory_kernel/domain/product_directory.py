"""
ProductDirectory -- the product catalog as seen from the ledger.

The catalog itself (CRUD, naming, units) lives outside the kernel.  The
ledger needs exactly one fact from it: whether a product code exists.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable


class ProductDirectory(ABC):
    """Answers whether a product code is known to the catalog."""

    @abstractmethod
    def product_exists(self, product_code: str) -> bool:
        ...


class StaticProductDirectory(ProductDirectory):
    """Directory backed by a fixed set of codes (config, CLI, tests)."""

    def __init__(self, product_codes: Iterable[str] = ()):
        self._codes = set(product_codes)

    def add(self, product_code: str) -> None:
        self._codes.add(product_code)

    def discard(self, product_code: str) -> None:
        self._codes.discard(product_code)

    def product_exists(self, product_code: str) -> bool:
        return product_code in self._codes

    def __len__(self) -> int:
        return len(self._codes)

