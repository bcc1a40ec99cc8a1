import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config import get_settings
from database.models import MODELS, Base

logger = logging.getLogger("chatbot.db")

DATABASE_URL = get_settings().database_url

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Create the tables of every registered model if they don't exist."""
    bind = bind or engine
    tables = [model.__table__ for model in MODELS.values()]
    Base.metadata.create_all(bind=bind, tables=tables)
    logger.info(f"Database ready: {', '.join(sorted(MODELS))}")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
