"""
Mock Order Generator

Builds realistic order requests for the order API using Faker:

- a fixed pool of customers, each with a home delivery address
- a fixed pool of partner (restaurant) ids
- a fixed menu; each order picks 1 to 4 distinct items, 1 to 3 of each
- a delivery fee of 29 or 39

REPRODUCIBILITY:
The generator owns its own ``random.Random`` and ``Faker`` instance, both
seeded, so two generators built with the same seed yield the same order
sequence regardless of what else in the process uses ``random``.
"""

import random
from typing import Any, Dict, List

from faker import Faker

DEFAULT_SEED = 42
MIN_ITEMS_PER_ORDER = 1
MAX_ITEMS_PER_ORDER = 4
DELIVERY_FEES = (29.0, 39.0)

# (name, unit price)
MENU = [
    ("Margherita Pizza", 129.0),
    ("Pepperoni Pizza", 149.0),
    ("Quattro Formaggi", 159.0),
    ("Classic Burger", 119.0),
    ("Bacon Burger", 139.0),
    ("Veggie Burger", 115.0),
    ("Chicken Wrap", 95.0),
    ("Falafel Plate", 105.0),
    ("Pad Thai", 135.0),
    ("Green Curry", 145.0),
    ("Sushi Set (12 pcs)", 219.0),
    ("Ramen", 155.0),
    ("Caesar Salad", 99.0),
    ("French Fries", 39.0),
    ("Onion Rings", 45.0),
    ("Garlic Bread", 35.0),
    ("Lemonade", 29.0),
    ("Iced Tea", 29.0),
    ("Brownie", 42.0),
    ("Cheesecake", 59.0),
]


class MockOrderGenerator:
    """
    Generates order create requests.

    Attributes:
        customers: List of {"customer_id", "name", "address"} dicts
        partner_ids: Partner ids orders are spread across
        menu_items: List of {"food_item_id", "name", "unit_price"} dicts
        orders_generated: Counter
    """

    def __init__(self, seed: int = DEFAULT_SEED, num_customers: int = 100, num_partners: int = 10):
        self.seed = seed
        self.random = random.Random(seed)
        self.fake = Faker()
        self.fake.seed_instance(seed)

        self.customers = self._generate_customers(num_customers)
        self.partner_ids = list(range(1, num_partners + 1))
        self.menu_items = [
            {"food_item_id": i, "name": name, "unit_price": price}
            for i, (name, price) in enumerate(MENU, start=1)
        ]
        self.orders_generated = 0

    def _generate_customers(self, count: int) -> List[Dict[str, Any]]:
        customers = []
        for i in range(1, count + 1):
            customers.append({
                "customer_id": i,
                "name": self.fake.name(),
                # Single line; Faker addresses contain newlines
                "address": self.fake.address().replace("\n", ", "),
            })
        return customers

    def random_items(self) -> List[Dict[str, Any]]:
        """Pick 1-4 distinct menu items with a quantity of 1-3 each."""
        count = self.random.randint(MIN_ITEMS_PER_ORDER, MAX_ITEMS_PER_ORDER)
        picked = self.random.sample(self.menu_items, count)
        return [dict(item, quantity=self.random.randint(1, 3)) for item in picked]

    def generate_order(self) -> Dict[str, Any]:
        """
        Build one order create request body.

        Example:
            >>> generator = MockOrderGenerator(seed=7)
            >>> order = generator.generate_order()
            >>> sorted(order)
            ['customer_id', 'delivery_address', 'delivery_fee', 'items', 'partner_id']
        """
        customer = self.random.choice(self.customers)
        order = {
            "customer_id": customer["customer_id"],
            "partner_id": self.random.choice(self.partner_ids),
            "delivery_address": customer["address"],
            "delivery_fee": self.random.choice(DELIVERY_FEES),
            "items": self.random_items(),
        }
        self.orders_generated += 1
        return order
