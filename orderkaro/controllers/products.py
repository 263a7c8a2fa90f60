"""
Catalogue reads (cached) and admin product maintenance.
"""
import logging
from typing import Any, Dict, List, Optional

from orderkaro.cache import QueryCache
from orderkaro.client import DataClient
from orderkaro.controllers.base import Controller
from orderkaro.errors import ErrorKind, RemoteError, not_found, validation_error
from orderkaro.notifications import NotificationCenter

logger = logging.getLogger(__name__)

SORT_ORDERS = {
    "newest": [("created_at", False), ("id", False)],
    "price_asc": [("price", True), ("id", True)],
    "price_desc": [("price", False), ("id", True)],
    "name": [("name", True), ("id", True)],
}

RELATED_LIMIT = 4


class ProductController(Controller):
    def __init__(self, data: DataClient, notifications: NotificationCenter, cache: QueryCache):
        super().__init__(data, notifications)
        self._cache = cache

    def _cached_select(self, table: str, query) -> List[Dict[str, Any]]:
        params = query.params()
        cached = self._cache.get(table, params)
        if cached is not None:
            return cached
        rows = query.select()
        self._cache.set(table, params, rows)
        return rows

    def list_categories(self) -> List[Dict[str, Any]]:
        return self._cached_select("categories", self._data.table("categories").order("name"))

    def list_products(
        self,
        category_id: Optional[int] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        search: Optional[str] = None,
        sort: str = "newest",
    ) -> List[Dict[str, Any]]:
        """
        List products with optional filtering.

        Filters are composed only when given; identical filter sets are
        served from the query cache until it expires.
        """
        if sort not in SORT_ORDERS:
            raise validation_error(f"Unknown sort '{sort}'")
        if min_price is not None and max_price is not None and min_price > max_price:
            raise validation_error("min_price cannot be greater than max_price")

        query = self._data.table("products")
        if category_id is not None:
            query = query.eq("category_id", category_id)
        if min_price is not None:
            query = query.gte("price", min_price)
        if max_price is not None:
            query = query.lte("price", max_price)
        if search and search.strip():
            query = query.ilike("name", f"%{search.strip()}%")
        for column, ascending in SORT_ORDERS[sort]:
            query = query.order(column, ascending)

        return self._cached_select("products", query)

    def get_product(self, product_id: int) -> Dict[str, Any]:
        params = {"id": product_id}
        cached = self._cache.get("products", params)
        if cached is not None:
            return cached
        try:
            product = self._data.table("products").eq("id", product_id).single()
        except RemoteError as error:
            if error.kind is ErrorKind.NOT_FOUND:
                raise not_found("Product not found")
            raise
        self._cache.set("products", params, product)
        return product

    def related_products(self, product_id: int) -> List[Dict[str, Any]]:
        product = self.get_product(product_id)
        query = (
            self._data.table("products")
            .eq("category_id", product["category_id"])
            .neq("id", product_id)
            .order("name")
            .limit(RELATED_LIMIT)
        )
        return self._cached_select("products", query)

    def search(self, keyword: str) -> List[Dict[str, Any]]:
        """Products whose name or description contains the keyword."""
        if not keyword or not keyword.strip():
            raise validation_error("Keyword is required")
        query = (
            self._data.table("products")
            .ilike_any(("name", "description"), f"%{keyword.strip()}%")
            .order("name")
        )
        return self._cached_select("products", query)

    def _check_category(self, category_id: int) -> None:
        if self._data.table("categories").eq("id", category_id).maybe_single() is None:
            raise validation_error("Category does not exist")

    def create(self, user_id, values: Dict[str, Any]) -> Dict[str, Any]:
        if not values.get("name", "").strip():
            raise validation_error("Please provide required fields")
        self._check_category(values["category_id"])

        with self.reporting(user_id, "Could not create product", "create product"):
            product = self._data.table("products").insert({**values, "name": values["name"].strip()})[0]
        self._cache.clear("products")
        self.notify(user_id, "Product created")
        return product

    def update(self, user_id, product_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        changes = {k: v for k, v in changes.items() if v is not None}
        self.get_product(product_id)
        if "name" in changes and not changes["name"].strip():
            raise validation_error("Name cannot be empty")
        if "category_id" in changes:
            self._check_category(changes["category_id"])

        if not changes:
            return self.get_product(product_id)

        with self.reporting(user_id, "Could not update product", "update product"):
            product = self._data.table("products").eq("id", product_id).update(changes)[0]
        self._cache.clear("products")
        return product

    def delete(self, user_id, product_id: int) -> None:
        with self.reporting(user_id, "Could not delete product", "delete product"):
            deleted = self._data.table("products").eq("id", product_id).delete()
        if not deleted:
            raise not_found("Product not found")
        self._cache.clear("products")
        logger.info("Deleted product %s", product_id)
