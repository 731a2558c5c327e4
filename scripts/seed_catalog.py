"""
Catalog Seed Script

Creates the tables and loads a sample menu into the database catalog.
Run from project root: python scripts/seed_catalog.py [--restaurant main]

Author: Khalil Bannouri
Version: 4.0.0
"""

import argparse
import asyncio
import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from orderflow.database import async_session_maker, init_db
from orderflow.services.catalog import DatabaseCatalogService

MENU_ITEMS = [
    ("margherita", "Pizza Margherita", "14.99"),
    ("pepperoni", "Pepperoni Pizza", "16.99"),
    ("caesar", "Caesar Salad", "8.99"),
    ("garlic-bread", "Garlic Bread", "5.99"),
    ("carbonara", "Pasta Carbonara", "13.99"),
    ("tiramisu", "Tiramisu", "7.99"),
    ("coke", "Coke", "2.99"),
    ("sparkling", "Sparkling Water", "3.49"),
]


async def seed(restaurant_id: str) -> None:
    await init_db()
    catalog = DatabaseCatalogService(async_session_maker)

    for item_id, name, price in MENU_ITEMS:
        await catalog.upsert_item(restaurant_id, item_id, name, Decimal(price), is_available=True)
        print(f"   {item_id:<14} {name:<20} ${price}")

    print(f"\nSeeded {len(MENU_ITEMS)} items for restaurant '{restaurant_id}'")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the database catalog")
    parser.add_argument("--restaurant", default="main", help="Restaurant id")
    args = parser.parse_args()

    asyncio.run(seed(args.restaurant))
