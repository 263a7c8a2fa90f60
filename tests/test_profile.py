import asyncio

import pytest

ADDRESS = {
    "address_line": "14 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
    "type": "home",
}


@pytest.fixture
def add_address(client, headers):
    def _add(**overrides):
        response = client.post("/api/profile/addresses", headers=headers, json={**ADDRESS, **overrides})
        assert response.status_code == 201, response.text
        return response.json()
    return _add


def defaults(client, headers):
    return [a["id"] for a in client.get("/api/profile/addresses", headers=headers).json() if a["is_default"]]


# ============================================================================
# PROFILE
# ============================================================================

def test_get_profile(client, headers):
    response = client.get("/api/profile", headers=headers)
    assert response.status_code == 200
    assert response.json()["email"] == "asha@orderkaro.in"


def test_update_profile(client, headers):
    response = client.put("/api/profile", headers=headers, json={"name": "Asha V", "email": "asha.v@orderkaro.in"})
    assert response.status_code == 200
    assert response.json()["name"] == "Asha V"
    assert response.json()["email"] == "asha.v@orderkaro.in"


def test_update_profile_email_taken(client, headers, make_user):
    make_user("ravi@orderkaro.in", name="Ravi")
    response = client.put("/api/profile", headers=headers, json={"email": "ravi@orderkaro.in"})
    assert response.status_code == 409
    assert response.json() == {"message": "Email is already in use"}


def test_update_profile_blank_name(client, headers):
    response = client.put("/api/profile", headers=headers, json={"name": "   "})
    assert response.status_code == 400


# ============================================================================
# ADDRESSES
# ============================================================================

def test_add_address(client, headers, add_address):
    address = add_address()
    assert address["city"] == "Bengaluru"
    assert address["is_default"] is False


def test_add_address_missing_fields(client, headers):
    response = client.post("/api/profile/addresses", headers=headers, json={**ADDRESS, "city": "  "})
    assert response.status_code == 400
    assert response.json() == {"message": "Please fill all the required fields"}


def test_add_address_invalid_type(client, headers):
    response = client.post("/api/profile/addresses", headers=headers, json={**ADDRESS, "type": "office"})
    assert response.status_code == 400


def test_new_default_replaces_old_default(client, headers, add_address):
    first = add_address(is_default=True)
    second = add_address(is_default=True, address_line="2 Park Street")
    assert defaults(client, headers) == [second["id"]]
    assert first["id"] != second["id"]


def test_set_default_keeps_a_single_default(client, headers, add_address):
    first = add_address(is_default=True)
    second = add_address()
    third = add_address()

    response = client.put(f"/api/profile/addresses/{third['id']}/default", headers=headers)
    assert response.status_code == 200
    assert response.json()["is_default"] is True
    assert defaults(client, headers) == [third["id"]]

    client.put(f"/api/profile/addresses/{second['id']}/default", headers=headers)
    assert defaults(client, headers) == [second["id"]]
    assert first["id"] not in defaults(client, headers)


def test_list_puts_default_first(client, headers, add_address):
    add_address(address_line="A")
    default = add_address(address_line="B", is_default=True)
    add_address(address_line="C")

    listed = client.get("/api/profile/addresses", headers=headers).json()
    assert listed[0]["id"] == default["id"]
    assert [a["address_line"] for a in listed[1:]] == ["C", "A"]


def test_update_address(client, headers, add_address):
    address = add_address()
    response = client.put(f"/api/profile/addresses/{address['id']}", headers=headers, json={"city": "Mysuru"})
    assert response.status_code == 200
    assert response.json()["city"] == "Mysuru"
    assert response.json()["pincode"] == ADDRESS["pincode"]


def test_update_address_to_default(client, headers, add_address):
    first = add_address(is_default=True)
    second = add_address()
    client.put(f"/api/profile/addresses/{second['id']}", headers=headers, json={"is_default": True})
    assert defaults(client, headers) == [second["id"]]
    assert first["id"] not in defaults(client, headers)


def test_delete_address(client, headers, add_address):
    address = add_address()
    assert client.delete(f"/api/profile/addresses/{address['id']}", headers=headers).status_code == 200
    response = client.delete(f"/api/profile/addresses/{address['id']}", headers=headers)
    assert response.status_code == 404
    assert response.json() == {"message": "Address not found"}


def test_addresses_are_private(client, add_address, make_user):
    address = add_address()
    _, other_headers = make_user("ravi@orderkaro.in", name="Ravi")
    assert client.get("/api/profile/addresses", headers=other_headers).json() == []
    response = client.put(f"/api/profile/addresses/{address['id']}/default", headers=other_headers)
    assert response.status_code == 404


def test_account_setup_repairs_duplicate_defaults(client, services, user, add_address):
    user_id = user["user"]["id"]
    add_address(is_default=True)
    add_address()
    services.data.table("addresses").eq("user_id", user_id).update({"is_default": True})

    services.account_setup.forget(user_id)
    assert asyncio.run(services.account_setup.run(user_id)) is True

    rows = services.data.table("addresses").eq("user_id", user_id).eq("is_default", True).select()
    assert len(rows) == 1
