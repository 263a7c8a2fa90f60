"""
Read-only order history. Orders themselves are written by the payment flow.
"""
from typing import Any, Dict, List

from orderkaro.controllers.base import Controller
from orderkaro.errors import not_found


def format_order(order: Dict[str, Any], items: List[Dict[str, Any]], address) -> Dict[str, Any]:
    return {
        "id": order["id"],
        "total_price": order["total_price"],
        "payment_status": order["payment_status"],
        "payment_id": order["payment_id"],
        "order_status": order["order_status"],
        "created_at": order["created_at"],
        "address": address,
        "items": items,
    }


class OrderController(Controller):
    def _with_details(self, orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not orders:
            return []

        items_by_order: Dict[int, List[Dict[str, Any]]] = {order["id"]: [] for order in orders}
        for item in self._data.table("order_items").in_("order_id", list(items_by_order)).order("id").select():
            items_by_order[item["order_id"]].append(item)

        address_ids = {order["address_id"] for order in orders if order["address_id"] is not None}
        addresses = {}
        if address_ids:
            addresses = {a["id"]: a for a in self._data.table("addresses").in_("id", address_ids).select()}

        return [
            format_order(order, items_by_order[order["id"]], addresses.get(order["address_id"]))
            for order in orders
        ]

    def history(self, user_id: int) -> List[Dict[str, Any]]:
        with self.reporting(user_id, "Error fetching order history", "fetch orders"):
            orders = (
                self._data.table("orders")
                .eq("user_id", user_id)
                .order("created_at", ascending=False)
                .order("id", ascending=False)
                .select()
            )
            return self._with_details(orders)

    def details(self, user_id: int, order_id: int) -> Dict[str, Any]:
        order = self._data.table("orders").eq("id", order_id).eq("user_id", user_id).maybe_single()
        if order is None:
            raise not_found("Order not found")
        with self.reporting(user_id, "Error fetching order", "fetch order"):
            return self._with_details([order])[0]
