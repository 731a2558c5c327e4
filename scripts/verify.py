"""
Order Integrity Verification Script

Checks the stored orders and their status journal after a simulation:
    - totals equal subtotal + tax + service charge
    - no two active orders of a restaurant share a display code
    - every order's journal starts with its creation and replays to its status
    - journal sequences run 1, 2, 3, ... per restaurant without gaps

Run from project root: python scripts/verify.py

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import os
import sys
from collections import Counter
from datetime import datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from orderflow.database import async_session_maker
from orderflow.models import OrderStatus
from orderflow.services.orders.store import OrderStore
from orderflow.services.orders.transitions import is_valid_transition


async def verify(restaurant_id: str = "main") -> bool:
    store = OrderStore(async_session_maker)
    orders = await store.list_by_filter(restaurant_id, statuses=list(OrderStatus), limit=100000)

    print("=" * 60)
    print("ORDER INTEGRITY REPORT")
    print("=" * 60)
    print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Restaurant: {restaurant_id}")
    print(f"Orders: {len(orders)}")
    print("=" * 60)

    problems = []

    for order in orders:
        if order.total != order.subtotal + order.tax_amount + order.service_charge:
            problems.append(f"{order.display_code}: total does not add up")

    active_codes = Counter(o.display_code for o in orders if o.is_active)
    for code, count in active_codes.items():
        if count > 1:
            problems.append(f"display code {code} held by {count} active orders")

    for order in orders:
        history = await store.history(order.id)
        if not history or not history[0].is_creation:
            problems.append(f"{order.display_code}: journal has no creation record")
            continue
        status = history[0].to_status
        for event in history[1:]:
            if event.from_status != status or not is_valid_transition(event.from_status, event.to_status):
                problems.append(f"{order.display_code}: broken journal at #{event.sequence}")
                break
            status = event.to_status
        if status != order.status:
            problems.append(f"{order.display_code}: journal ends at {status.value}, order is {order.status.value}")

    events = await store.events_since(restaurant_id, 0, limit=None)
    sequences = [e.sequence for e in events]
    if sequences != list(range(1, len(sequences) + 1)):
        problems.append("journal sequences are not contiguous from 1")

    if problems:
        print(f"\n{len(problems)} problems found:")
        for problem in problems[:20]:
            print(f"   - {problem}")
    else:
        print("\nAll checks passed")

    print("=" * 60)
    return not problems


if __name__ == "__main__":
    ok = asyncio.run(verify(sys.argv[1] if len(sys.argv) > 1 else "main"))
    sys.exit(0 if ok else 1)
