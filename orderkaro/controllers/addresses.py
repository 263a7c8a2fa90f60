"""
Address book. Switching the default address unsets the others and sets the
new one inside a single transaction, so a user never ends up with zero or
several defaults because of a partial write.
"""
from typing import Any, Dict, List

from orderkaro.controllers.base import Controller
from orderkaro.errors import not_found, validation_error

REQUIRED_FIELDS = ("address_line", "city", "state", "pincode")
ADDRESS_TYPES = ("home", "work", "other")


def _clean(values: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {}
    for key, value in values.items():
        if value is None:
            continue
        if key in REQUIRED_FIELDS:
            value = value.strip()
            if not value:
                raise validation_error("Please fill all the required fields")
        if key == "type" and value not in ADDRESS_TYPES:
            raise validation_error(f"Address type must be one of {', '.join(ADDRESS_TYPES)}")
        cleaned[key] = value
    return cleaned


class AddressController(Controller):
    def list(self, user_id: int) -> List[Dict[str, Any]]:
        with self.reporting(user_id, "Failed to load addresses", "fetch addresses"):
            return (
                self._data.table("addresses")
                .eq("user_id", user_id)
                .order("is_default", ascending=False)
                .order("created_at", ascending=False)
                .order("id", ascending=False)
                .select()
            )

    def add(self, user_id: int, values: Dict[str, Any]) -> Dict[str, Any]:
        values = _clean(values)
        if any(field not in values for field in REQUIRED_FIELDS):
            raise validation_error("Please fill all the required fields")

        with self.reporting(user_id, "Failed to save address", "add address"):
            with self._data.transaction() as tx:
                if values.get("is_default"):
                    tx.table("addresses").eq("user_id", user_id).eq("is_default", True).update({"is_default": False})
                address = tx.table("addresses").insert({**values, "user_id": user_id})[0]

        self.notify(user_id, "Address added successfully")
        return address

    def update(self, user_id: int, address_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        changes = _clean(changes)

        with self.reporting(user_id, "Failed to save address", "update address"):
            with self._data.transaction() as tx:
                existing = tx.table("addresses").eq("id", address_id).eq("user_id", user_id).maybe_single()
                if existing is None:
                    raise not_found("Address not found")
                if not changes:
                    return existing
                if changes.get("is_default"):
                    (
                        tx.table("addresses")
                        .eq("user_id", user_id)
                        .eq("is_default", True)
                        .neq("id", address_id)
                        .update({"is_default": False})
                    )
                address = tx.table("addresses").eq("id", address_id).update(changes)[0]

        self.notify(user_id, "Address updated successfully")
        return address

    def delete(self, user_id: int, address_id: int) -> None:
        with self.reporting(user_id, "Failed to delete address", "delete address"):
            deleted = self._data.table("addresses").eq("id", address_id).eq("user_id", user_id).delete()
        if not deleted:
            raise not_found("Address not found")
        self.notify(user_id, "Address deleted successfully")

    def set_default(self, user_id: int, address_id: int) -> Dict[str, Any]:
        with self.reporting(user_id, "Failed to update default address", "set default address"):
            with self._data.transaction() as tx:
                existing = tx.table("addresses").eq("id", address_id).eq("user_id", user_id).maybe_single()
                if existing is None:
                    raise not_found("Address not found")
                tx.table("addresses").eq("user_id", user_id).eq("is_default", True).update({"is_default": False})
                address = tx.table("addresses").eq("id", address_id).update({"is_default": True})[0]

        self.notify(user_id, "Default address updated")
        return address
