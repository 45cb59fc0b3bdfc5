"""Store catalog seed data."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.db.models import StoreItem

logger = logging.getLogger(__name__)

STORE_SEED_DATA: list[dict] = [
    # Gift cards (pending fulfillment, delivered by email)
    {"id": "giftcard-amazon-5", "name": "$5 Amazon Gift Card",
     "description": "Digital Amazon gift card code sent to your email",
     "credits_cost": 5000, "item_type": "giftcard", "category": "giftcards", "icon": "🛒", "sort_order": 1},
    {"id": "giftcard-amazon-10", "name": "$10 Amazon Gift Card",
     "description": "Digital Amazon gift card code sent to your email",
     "credits_cost": 9500, "item_type": "giftcard", "category": "giftcards", "icon": "🛒", "sort_order": 2},
    {"id": "giftcard-amazon-25", "name": "$25 Amazon Gift Card",
     "description": "Digital Amazon gift card code sent to your email",
     "credits_cost": 23000, "item_type": "giftcard", "category": "giftcards", "icon": "🛒", "sort_order": 3},
    {"id": "giftcard-apple-5", "name": "$5 Apple Gift Card",
     "description": "Digital Apple gift card code sent to your email",
     "credits_cost": 5000, "item_type": "giftcard", "category": "giftcards", "icon": "🍎", "sort_order": 4},
    {"id": "giftcard-apple-10", "name": "$10 Apple Gift Card",
     "description": "Digital Apple gift card code sent to your email",
     "credits_cost": 9500, "item_type": "giftcard", "category": "giftcards", "icon": "🍎", "sort_order": 5},
    {"id": "giftcard-google-5", "name": "$5 Google Play Gift Card",
     "description": "Digital Google Play gift card code sent to your email",
     "credits_cost": 5000, "item_type": "giftcard", "category": "giftcards", "icon": "🎮", "sort_order": 7},
    {"id": "giftcard-starbucks-5", "name": "$5 Starbucks Gift Card",
     "description": "Digital Starbucks gift card code sent to your email",
     "credits_cost": 5000, "item_type": "giftcard", "category": "giftcards", "icon": "☕", "sort_order": 9},

    # Cosmetics (permanent unlocks)
    {"id": "theme-dark-pro", "name": "Dark Mode Pro", "description": "Unlock the sleek dark theme with OLED blacks",
     "credits_cost": 100, "item_type": "cosmetic", "category": "cosmetics", "max_per_user": 1,
     "icon": "🌙", "sort_order": 20},
    {"id": "theme-neon", "name": "Neon Theme Pack", "description": "Vibrant neon colors that pop",
     "credits_cost": 250, "item_type": "cosmetic", "category": "cosmetics", "max_per_user": 1,
     "icon": "💜", "sort_order": 21},
    {"id": "theme-gold", "name": "Gold Theme", "description": "Luxurious gold accents everywhere",
     "credits_cost": 300, "item_type": "cosmetic", "category": "cosmetics", "max_per_user": 1,
     "icon": "✨", "sort_order": 22},
    {"id": "icon-diamond", "name": "Custom App Icon - Diamond", "description": "Diamond icon to show your status",
     "credits_cost": 200, "item_type": "cosmetic", "category": "cosmetics", "max_per_user": 1,
     "icon": "💎", "sort_order": 24},

    # Consumables and boosts
    {"id": "streak-saver", "name": "Streak Saver", "description": "Protects your streak if you miss a day (single use)",
     "credits_cost": 150, "item_type": "consumable", "category": "gamification", "effect": "streak_saver",
     "icon": "🛡️", "sort_order": 30},
    {"id": "boost-2x-24h", "name": "2x Credit Boost (24h)", "description": "Double your ad rewards for 24 hours",
     "credits_cost": 100, "item_type": "boost", "category": "gamification", "duration_days": 1,
     "effect": "reward_multiplier", "icon": "⚡", "sort_order": 31},
    {"id": "boost-2x-7d", "name": "2x Credit Boost (7 days)", "description": "Double your ad rewards for a full week",
     "credits_cost": 500, "item_type": "boost", "category": "gamification", "duration_days": 7,
     "effect": "reward_multiplier", "icon": "🚀", "sort_order": 32},

    # Premium content (one-time unlocks)
    {"id": "content-advanced-lessons", "name": "Advanced Lessons",
     "description": "Unlock 10 advanced lessons", "credits_cost": 500, "item_type": "cosmetic",
     "category": "premium", "max_per_user": 1, "icon": "📖", "sort_order": 50},

    # VIP / status
    {"id": "badge-vip", "name": "VIP Badge", "description": "Show off your VIP status on your profile",
     "credits_cost": 1000, "item_type": "badge", "category": "vip", "max_per_user": 1, "icon": "👑", "sort_order": 60},
    {"id": "badge-founder", "name": "Founder Badge", "description": "Limited edition badge for early supporters",
     "credits_cost": 2000, "item_type": "badge", "category": "vip", "max_per_user": 1, "icon": "🏆", "sort_order": 61},
    {"id": "sub-pro-30d", "name": "Pro Member (30 days)", "description": "All premium features for 30 days",
     "credits_cost": 1500, "item_type": "subscription", "category": "vip", "duration_days": 30,
     "icon": "⭐", "sort_order": 62},
]


async def seed_store_items(db: AsyncSession) -> int:
    """Upsert the catalog by id. Safe to run repeatedly. Returns number of items seeded."""
    seeded = 0
    for item_data in STORE_SEED_DATA:
        await db.merge(StoreItem(is_active=True, **item_data))
        seeded += 1

    await db.commit()
    logger.info("Seeded %d store items", seeded)
    return seeded
