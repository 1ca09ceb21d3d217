#!/usr/bin/env python3
"""Seed database with demo merchants.

Creates:
- Verified, approved merchants around Mexico City with live offers
- An approved verification record for each of them

The script is idempotent: merchants are matched by owner id and skipped
when they already exist.

Usage:
    cd services/api
    python -m scripts.seed
"""

import asyncio
import os
import sys
from datetime import datetime, timezone
from uuid import uuid4

# Add parent to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from savebags.models import MerchantRow, VerificationRow
from savebags.schemas import VerificationStatus
from savebags.stores import postgres

load_dotenv()

# ============================================================
# Demo merchants
# ============================================================

DEMO_MERCHANTS = [
    {
        "owner_id": "seed-owner-bakery",
        "name": "Panadería La Espiga",
        "type": "Panadería artesanal",
        "category": "bakery",
        "description": "Pan dulce y bolillos del día.",
        "address": "Av. Álvaro Obregón 120, Roma Norte, CDMX",
        "lat": 19.4194,
        "lng": -99.1617,
        "original_price": 250,
        "save_price": 89,
        "bags_available": 6,
        "pickup_start": "19:00",
        "pickup_end": "21:00",
        "dietary": ["vegetarian"],
        "rating": 4.7,
        "reviews": 128,
    },
    {
        "owner_id": "seed-owner-cafe",
        "name": "Café Tacuba Verde",
        "type": "Cafetería",
        "category": "cafe",
        "description": "Sándwiches, ensaladas y postres.",
        "address": "Calle de Tacuba 28, Centro, CDMX",
        "lat": 19.4361,
        "lng": -99.1395,
        "original_price": 300,
        "save_price": 99,
        "bags_available": 4,
        "pickup_start": "18:30",
        "pickup_end": "20:30",
        "dietary": ["vegetarian", "organic"],
        "rating": 4.5,
        "reviews": 64,
    },
    {
        "owner_id": "seed-owner-restaurant",
        "name": "Cocina Milpa",
        "type": "Restaurante",
        "category": "restaurant",
        "description": "Guisados caseros y arroz.",
        "address": "Av. Insurgentes Sur 1602, Del Valle, CDMX",
        "lat": 19.3722,
        "lng": -99.1780,
        "original_price": 420,
        "save_price": 149,
        "bags_available": 3,
        "pickup_start": "21:00",
        "pickup_end": "22:30",
        "dietary": [],
        "rating": 4.2,
        "reviews": 37,
    },
    {
        "owner_id": "seed-owner-vegan",
        "name": "Raíz Vegana",
        "type": "Comida vegana",
        "category": "vegan",
        "description": "Bowls y wraps 100% vegetales.",
        "address": "Calle Ámsterdam 240, Condesa, CDMX",
        "lat": 19.4115,
        "lng": -99.1700,
        "original_price": 280,
        "save_price": 95,
        "bags_available": 5,
        "pickup_start": "20:00",
        "pickup_end": "22:00",
        "dietary": ["vegan", "vegetarian", "gluten-free"],
        "rating": 4.8,
        "reviews": 91,
    },
]


async def seed_merchants(session: AsyncSession) -> int:
    """Insert demo merchants that are not present yet."""
    created = 0
    now = datetime.now(timezone.utc)

    for data in DEMO_MERCHANTS:
        result = await session.execute(select(MerchantRow).where(MerchantRow.owner_id == data["owner_id"]))
        if result.scalar_one_or_none():
            print(f"  ⏭ Merchant exists: {data['name']}")
            continue

        merchant = MerchantRow(
            **data,
            email=f"{data['owner_id']}@example.com",
            is_active=True,
            verified=True,
            verification_status=VerificationStatus.APPROVED.value,
            created_at=now,
            updated_at=now,
        )
        session.add(merchant)
        await session.flush()

        session.add(
            VerificationRow(
                id=str(uuid4()),
                merchant_id=merchant.id,
                contact_name="Demo",
                contact_phone="5550000000",
                tax_id="XAXX010101000",
                documents={},
                status=VerificationStatus.APPROVED.value,
                submitted_at=now,
                reviewed_at=now,
            )
        )
        created += 1
        print(f"  ✓ Created merchant: {data['name']}")

    return created


async def seed_database() -> None:
    """Main seed function."""
    print("=" * 60)
    print("Seeding Save Bags demo data")
    print("=" * 60)

    await postgres.init_db(os.getenv("DATABASE_URL"))
    await postgres.create_tables()

    try:
        async with postgres.get_session() as session:
            print("\n📦 Seeding merchants...")
            created = await seed_merchants(session)
        print(f"\n✅ Done: {created} merchant(s) created")
    finally:
        await postgres.close_db()


if __name__ == "__main__":
    asyncio.run(seed_database())
