"""
Sample catalogue loaded into an empty database.
"""
import logging

from orderkaro.client import DataClient

logger = logging.getLogger(__name__)

SAMPLE_CATEGORIES = [
    {"name": "Fruits", "description": "Fresh seasonal fruits"},
    {"name": "Dairy", "description": "Milk, eggs and dairy products"},
    {"name": "Bakery", "description": "Freshly baked bread and cookies"},
    {"name": "Snacks", "description": "Chips and quick bites"},
    {"name": "Drinks", "description": "Juices and water"},
    {"name": "Pantry", "description": "Oils and cooking essentials"},
]

# (category name, product row)
SAMPLE_PRODUCTS = [
    ("Fruits", {
        "name": "Fresh Apples",
        "description": "Crisp and juicy red apples, locally sourced",
        "price": 2.99,
        "stock": 120,
    }),
    ("Dairy", {
        "name": "Whole Milk",
        "description": "Fresh whole milk, 1 liter bottle",
        "price": 3.49,
        "stock": 80,
    }),
    ("Bakery", {
        "name": "White Bread",
        "description": "Freshly baked white bread, 500g loaf",
        "price": 1.99,
        "stock": 40,
    }),
    ("Dairy", {
        "name": "Free Range Eggs",
        "description": "12 large free-range eggs",
        "price": 4.99,
        "stock": 60,
    }),
    ("Snacks", {
        "name": "Potato Chips",
        "description": "Crunchy salted potato chips, 200g bag",
        "price": 2.49,
        "stock": 150,
    }),
    ("Drinks", {
        "name": "Orange Juice",
        "description": "100% pure orange juice, 1 liter carton",
        "price": 3.99,
        "stock": 70,
    }),
    ("Fruits", {
        "name": "Bananas",
        "description": "Sweet yellow bananas, organic",
        "price": 1.99,
        "stock": 200,
    }),
    ("Pantry", {
        "name": "Extra Virgin Olive Oil",
        "description": "Premium olive oil, 500ml bottle",
        "price": 8.99,
        "stock": 35,
    }),
    ("Bakery", {
        "name": "Chocolate Cookies",
        "description": "Homemade chocolate chip cookies, 300g pack",
        "price": 4.49,
        "stock": 0,  # Out of stock
    }),
    ("Drinks", {
        "name": "Sparkling Water",
        "description": "Natural sparkling mineral water, 750ml",
        "price": 1.29,
        "stock": 90,
    }),
]


def seed_sample_data(data: DataClient) -> bool:
    """Insert the sample catalogue if there are no products yet; returns True if it did."""
    if data.table("products").count() > 0:
        return False

    with data.transaction() as tx:
        categories = {}
        for category in SAMPLE_CATEGORIES:
            existing = tx.table("categories").eq("name", category["name"]).maybe_single()
            if existing is None:
                existing = tx.table("categories").insert(category)[0]
            categories[category["name"]] = existing["id"]

        tx.table("products").insert([
            {**product, "category_id": categories[category_name]}
            for category_name, product in SAMPLE_PRODUCTS
        ])

    logger.info("Seeded %d sample products", len(SAMPLE_PRODUCTS))
    return True
