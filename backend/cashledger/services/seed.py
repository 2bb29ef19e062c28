import logging

from sqlalchemy.orm import Session

from cashledger.core.roles import Role
from cashledger.core.security import hash_password
from cashledger.models.user import User
from cashledger.services.money_box_service import ensure_default_money_boxes


logger = logging.getLogger(__name__)

DEMO_USERS = [
    ("owner@demo.com", "Demo Owner", Role.owner),
    ("admin@demo.com", "Demo Admin", Role.admin),
    ("cashier@demo.com", "Demo Cashier", Role.cashier),
]
DEMO_PASSWORD = "secret123"


def seed_demo(db: Session) -> None:
    """Demo operators plus the well-known money boxes; safe to run repeatedly."""
    created = 0
    for email, name, role in DEMO_USERS:
        if db.query(User).filter(User.email == email).first():
            continue
        db.add(User(email=email, name=name, hashed_password=hash_password(DEMO_PASSWORD), role=role.value))
        created += 1
    db.commit()
    if created:
        logger.info("Seeded %s demo users", created)
    ensure_default_money_boxes(db)
