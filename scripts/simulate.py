"""
Chaos Simulation Script

Simulates high-concurrency order flow to test system resilience:
a burst of orders from every channel, then several kitchen stations
racing to move the same orders along the workflow.
Run from project root: python scripts/simulate.py

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import sys
import random
import time
import argparse
from datetime import datetime
from typing import Any

import httpx

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
RESTAURANT_ID = "main"

# Sample data for random orders
FIRST_NAMES = ["John", "Jane", "Mike", "Sarah", "Tom", "Emma", "David", "Lisa", "Chris", "Amy"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis", "Wilson", "Taylor"]
CHANNELS = ["web", "phone", "messaging", "walk_in"]
ORDER_TYPES = ["pickup", "delivery", "dine_in"]
MENU_ITEM_IDS = [
    "margherita", "pepperoni", "caesar", "garlic-bread",
    "carbonara", "tiramisu", "coke", "sparkling",
]
STATIONS = ["grill", "expo", "counter"]


def generate_order_payload() -> dict[str, Any]:
    """Generate a random order; the bogus price must be ignored by the server."""
    items = [
        {
            "item_id": random.choice(MENU_ITEM_IDS),
            "quantity": random.randint(1, 3),
            "price": 0.01,
        }
        for _ in range(random.randint(1, 4))
    ]
    return {
        "restaurant_id": RESTAURANT_ID,
        "customer_name": f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
        "contact_handle": f"+1555{random.randint(1000000, 9999999)}",
        "source_channel": random.choice(CHANNELS),
        "order_type": random.choice(ORDER_TYPES),
        "items": items,
        "notes": random.choice([None, "Extra napkins", "No onions", "Spicy"]),
    }


async def send_order(client: httpx.AsyncClient, order_num: int) -> dict[str, Any]:
    """Submit one order."""
    start_time = time.time()
    try:
        response = await client.post(f"{API_BASE_URL}/orders", json=generate_order_payload(), timeout=30.0)
    except httpx.HTTPError as e:
        return {"order_num": order_num, "success": False, "error": str(e)[:100], "time": 0.0}

    elapsed = round(time.time() - start_time, 3)
    if response.status_code == 201:
        data = response.json()
        return {
            "order_num": order_num,
            "success": True,
            "order_id": data["order_id"],
            "display_code": data["display_code"],
            "total": float(data["total"]),
            "warnings": data.get("warnings", []),
            "time": elapsed,
        }
    return {"order_num": order_num, "success": False, "error": response.text[:100], "time": elapsed}


async def race_confirm(client: httpx.AsyncClient, order_id: str) -> list[int]:
    """Every station tries new -> confirmed at once; exactly one should win."""
    requests = [
        client.patch(
            f"{API_BASE_URL}/orders/{order_id}/status",
            json={"status": "confirmed", "expected_status": "new", "actor": station},
            timeout=30.0,
        )
        for station in STATIONS
    ]
    responses = await asyncio.gather(*requests, return_exceptions=True)
    return [r.status_code for r in responses if isinstance(r, httpx.Response)]


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS) -> dict[str, Any]:
    print("=" * 70)
    print("CHAOS SIMULATION - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"Total Orders: {num_orders}")
    print(f"Target: {API_BASE_URL}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        print("\nFiring orders from every channel...\n")
        results = await asyncio.gather(*[send_order(client, i + 1) for i in range(num_orders)])

        successful = [r for r in results if r["success"]]
        print("Racing stations on every created order...\n")
        races = await asyncio.gather(*[race_confirm(client, r["order_id"]) for r in successful])

    total_time = round(time.time() - start_time, 2)
    failed = [r for r in results if not r["success"]]

    clean_races = sum(1 for codes in races if codes.count(200) == 1 and codes.count(409) == len(codes) - 1)
    codes = [r["display_code"] for r in successful]
    warned = [r for r in successful if r["warnings"]]

    print("=" * 70)
    print("SIMULATION RESULTS")
    print("=" * 70)
    print(f"\nSuccessful Orders: {len(successful)}/{num_orders}")
    print(f"Failed Orders: {len(failed)}/{num_orders}")
    print(f"Orders with warnings: {len(warned)}")
    print(f"Duplicate display codes: {len(codes) - len(set(codes))}")
    print(f"Races with exactly one winner: {clean_races}/{len(races)}")
    print(f"Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        total_revenue = sum(r["total"] for r in successful)
        print(f"\nAverage Response: {avg_time}s")
        print(f"Total Revenue: ${total_revenue:.2f}")

    if failed:
        print("\nFailed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("\nNext: python scripts/verify.py")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "clean_races": clean_races,
        "total_time": total_time,
    }


async def check_health() -> bool:
    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"API unreachable: {e}")
            return False
    data = response.json()
    print(f"Status: {data.get('status')} (database: {data.get('database')}, redis: {data.get('redis')})")
    return response.status_code == 200


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chaos Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    args = parser.parse_args()

    if not asyncio.run(check_health()):
        print("\nPre-flight health check failed. Start the API first.")
        sys.exit(1)

    asyncio.run(run_simulation(num_orders=args.orders))
