from typing import Any, Dict, Optional

from orderkaro.auth import check_password, hash_password, normalize_email, public_user
from orderkaro.controllers.base import Controller
from orderkaro.errors import ErrorKind, RemoteError, validation_error


class ProfileController(Controller):
    def get_profile(self, user_id: int) -> Dict[str, Any]:
        return public_user(self._data.table("users").eq("id", user_id).single())

    def update_profile(
        self,
        user_id: int,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
    ) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise validation_error("Name cannot be empty")
            changes["name"] = name.strip()
        if email is not None:
            email = normalize_email(email)
            taken = self._data.table("users").eq("email", email).neq("id", user_id).maybe_single()
            if taken is not None:
                raise RemoteError(ErrorKind.CONFLICT, "Email is already in use")
            changes["email"] = email
        if password:
            check_password(password)
            changes["password_hash"] = hash_password(password)

        if not changes:
            return self.get_profile(user_id)

        with self.reporting(user_id, "Failed to update profile", "update profile"):
            user = self._data.table("users").eq("id", user_id).update(changes)[0]
        self.notify(user_id, "Profile updated successfully")
        return public_user(user)
