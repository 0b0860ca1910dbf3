#!/usr/bin/env python3
# backend/scripts/seed_sample_data.py
"""
Seed a demo user with one asset per supported currency.

Safe to run repeatedly: the user and each labelled asset are created
only when missing. Prints the demo user's API token.

    python backend/scripts/seed_sample_data.py
"""
import logging
import sys
from decimal import Decimal
from pathlib import Path

# Setup path to import cryptofolio modules
backend_dir = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_dir))

from sqlalchemy import select

from cryptofolio.database import SessionLocal, engine
from cryptofolio.models import Asset, Base, CurrencyCode, User
from cryptofolio.services.user_service import UserService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_EMAIL = "demo@example.com"
DEMO_PASSWORD = "demo-password-123"

SAMPLE_ASSETS = [
    {"label": "Cold wallet", "currency": CurrencyCode.BTC, "amount": Decimal("1.99")},
    {"label": "Exchange account", "currency": CurrencyCode.ETH, "amount": Decimal("12.5")},
    {"label": "Tangle savings", "currency": CurrencyCode.IOTA, "amount": Decimal("2500")},
]


def seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        logger.info("🌱 Starting Database Seeding...")

        # 1. Demo user
        user = db.scalar(select(User).where(User.email == DEMO_EMAIL))
        if user is None:
            user = UserService().register(
                db,
                email=DEMO_EMAIL,
                password=DEMO_PASSWORD,
                name="Demo",
                surname="User",
            )
            logger.info(f"✅ Created User: {user.email}")
        else:
            logger.info(f"ℹ️ User exists: {user.email}")

        # 2. One asset per currency, keyed by label
        existing_labels = {a.label for a in user.assets}
        for data in SAMPLE_ASSETS:
            if data["label"] in existing_labels:
                logger.info(f"ℹ️ Asset exists: {data['label']}")
                continue
            db.add(Asset(
                user_id=user.id,
                label=data["label"],
                currency=int(data["currency"]),
                amount=data["amount"],
            ))
            logger.info(f"✅ Created Asset: {data['label']} ({data['currency'].ticker})")

        db.commit()
        logger.info("🚀 Seeding Complete!")
        print(f"Demo API token: {user.token}")

    except Exception as e:
        logger.error(f"❌ Seeding Failed: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
