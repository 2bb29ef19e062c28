import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from cashledger.core.config import settings
from cashledger.models.base import Base


logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict:
    options = {"pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        # Request workers share the connection pool across threads
        options["connect_args"] = {"check_same_thread": False, "timeout": 30}
    return options


engine = create_engine(settings.database_url, **_engine_options(settings.database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    # Register every model on the metadata before create_all
    import cashledger.models  # noqa: F401

    # Create tables in dev/test without running Alembic
    if settings.env in {"dev", "test"}:
        Base.metadata.create_all(bind=engine)

    if settings.seed_default_money_boxes:
        from cashledger.services.money_box_service import ensure_default_money_boxes

        with SessionLocal() as db:
            created = ensure_default_money_boxes(db)
            if created:
                logger.info("Default money boxes created: %s", ", ".join(box.name for box in created))
