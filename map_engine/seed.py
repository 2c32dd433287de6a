"""Mock account generator for local development."""

from __future__ import annotations

import datetime as dt
import logging
import random
import uuid
from typing import Dict, List, Optional, Tuple

from werkzeug.security import generate_password_hash

from .models import User
from .store import Store

logger = logging.getLogger(__name__)

MOCK_PASSWORD = "mockPassword123"
MOCK_CATEGORY = "Test"
MAX_MOCK_AMOUNT = 500.0
AMOUNT_WINDOW_DAYS = 30

NAME_WORDS = [
    "Acme", "Buster's", "Café", "Diner", "Eatery", "Fusion", "Grocery", "Hangout",
    "Ice Cream", "Jazz", "Kiosk", "Lounge", "Market", "Nook", "Outpost", "Pizzeria",
    "Quick Stop", "Restaurant", "Store", "Taco", "Uptown", "Village", "Waffle",
    "Xpress", "Yum", "Zest",
]


def mock_location_name(rng: random.Random) -> str:
    return f"{rng.choice(NAME_WORDS)} {rng.randrange(1000)}"


def mock_amount(rng: random.Random) -> float:
    return round(rng.uniform(0.01, MAX_MOCK_AMOUNT), 2)


def seed_mock_account(
    store: Store,
    location_count: int = 20,
    rng: Optional[random.Random] = None,
    today: Optional[dt.date] = None,
) -> Tuple[User, str, int]:
    """Create a throwaway user with random locations and amounts.

    Returns ``(user, password, amount_count)``.
    """
    rng = rng or random.Random()
    today = today or dt.date.today()
    email = f"mockuser-{uuid.UUID(int=rng.getrandbits(128), version=4)}@example.com"
    fields = {
        "email": email,
        "first_name": "Mock",
        "last_name": "User",
        "bank": "Test Bank",
        "current_balance": 10000.0,
        "address": "123 Test Street, Test City, TS 12345",
        "password_hash": generate_password_hash(MOCK_PASSWORD),
    }
    seeds: List[Dict] = [
        {"name": mock_location_name(rng), "category": MOCK_CATEGORY} for _ in range(location_count)
    ]
    user = store.users.create_with_locations(fields, seeds)
    logger.info("seeded user %s with %d locations", user.id, len(seeds))

    amount_count = 0
    for location in store.locations.get_by_user_id(user.id):
        for _ in range(rng.randint(1, 3)):
            when = today - dt.timedelta(days=rng.randrange(AMOUNT_WINDOW_DAYS))
            store.amounts.create(location.id, mock_amount(rng), when)
            amount_count += 1
    logger.info("seeded %d spending amounts", amount_count)
    return user, MOCK_PASSWORD, amount_count
