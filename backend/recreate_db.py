"""
Script to recreate the database with the cash ledger schema (development only)
"""
from cashledger.core.config import settings
from cashledger.core.database import SessionLocal, engine
from cashledger.core.logging import setup_logging
from cashledger.models import Base
from cashledger.services.seed import DEMO_PASSWORD, seed_demo


def recreate_db():
    setup_logging(settings.log_level, settings.log_file)
    print("Recreating database with the cash ledger schema...")

    print("Dropping existing tables...")
    Base.metadata.drop_all(bind=engine)

    print("Creating tables...")
    Base.metadata.create_all(bind=engine)

    print("Seeding demo data...")
    with SessionLocal() as db:
        seed_demo(db)

    print("Database recreated successfully!")
    print("\nLogin credentials:")
    print("   Email: owner@demo.com / admin@demo.com / cashier@demo.com")
    print(f"   Password: {DEMO_PASSWORD}")


if __name__ == "__main__":
    recreate_db()
