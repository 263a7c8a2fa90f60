"""
Shopping cart. Adding a product that is already in the cart increments the
existing line in a single atomic upsert, so concurrent adds never produce a
duplicate row.
"""
from typing import Any, Dict, Tuple

from orderkaro.controllers.base import Controller
from orderkaro.errors import not_found, validation_error


def _with_total(line: Dict[str, Any], product) -> Dict[str, Any]:
    price = product["price"] if product else 0.0
    return {**line, "product": product, "line_total": round(price * line["quantity"], 2)}


class CartController(Controller):
    def get_cart(self, user_id: int) -> Dict[str, Any]:
        with self.reporting(user_id, "Failed to load your cart", "fetch cart"):
            lines = (
                self._data.table("cart_items")
                .eq("user_id", user_id)
                .order("created_at")
                .order("id")
                .select()
            )
            products = {}
            if lines:
                rows = self._data.table("products").in_("id", {line["product_id"] for line in lines}).select()
                products = {p["id"]: p for p in rows}

        items = [_with_total(line, products.get(line["product_id"])) for line in lines]

        return {
            "items": items,
            "total": round(sum(item["line_total"] for item in items), 2),
            "count": len(items),
            "items_count": sum(item["quantity"] for item in items),
        }

    def add(self, user_id: int, product_id: int, quantity: int = 1) -> Tuple[Dict[str, Any], bool]:
        """
        Add quantity of a product to the user's cart.

        Returns (line, created) where created is False when an existing
        line was incremented. The resulting quantity may not exceed stock.
        """
        if quantity < 1:
            raise validation_error("Quantity must be greater than 0")

        with self.reporting(user_id, "Failed to add item to cart", "add to cart"):
            with self._data.transaction() as tx:
                product = tx.table("products").eq("id", product_id).maybe_single()
                if product is None:
                    raise not_found("Product not found")
                if product["stock"] < quantity:
                    raise validation_error("Not enough stock available")

                line = tx.increment_or_insert(
                    "cart_items",
                    {"user_id": user_id, "product_id": product_id, "quantity": quantity},
                    conflict_columns=("user_id", "product_id"),
                    column="quantity",
                )
                if line["quantity"] > product["stock"]:
                    raise validation_error("Not enough stock available")

        # existing lines hold at least 1, so an untouched insert is the only way to match
        created = line["quantity"] == quantity
        self.notify(user_id, "Added to cart" if created else "Updated quantity in cart")
        return _with_total(line, product), created

    def update_quantity(self, user_id: int, item_id: int, quantity: int):
        """Set a line's quantity; anything below 1 removes the line."""
        if quantity < 1:
            self.remove(user_id, item_id)
            return None

        with self.reporting(user_id, "Failed to update quantity", "update cart item"):
            with self._data.transaction() as tx:
                line = tx.table("cart_items").eq("id", item_id).eq("user_id", user_id).maybe_single()
                if line is None:
                    raise not_found("Cart item not found")
                product = tx.table("products").eq("id", line["product_id"]).maybe_single()
                if product is None:
                    raise not_found("Product not found")
                if product["stock"] < quantity:
                    raise validation_error("Not enough stock available")
                updated = tx.table("cart_items").eq("id", item_id).update({"quantity": quantity})[0]

        return _with_total(updated, product)

    def remove(self, user_id: int, item_id: int) -> None:
        with self.reporting(user_id, "Failed to remove item from cart", "remove from cart"):
            deleted = self._data.table("cart_items").eq("id", item_id).eq("user_id", user_id).delete()
        if not deleted:
            raise not_found("Cart item not found")
        self.notify(user_id, "Item removed from cart")

    def clear(self, user_id: int) -> int:
        with self.reporting(user_id, "Failed to clear cart", "clear cart"):
            removed = self._data.table("cart_items").eq("user_id", user_id).delete()
        self.notify(user_id, "Cart cleared")
        return removed
