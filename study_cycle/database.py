from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from study_cycle.config import settings

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(settings.database_url, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()

def init_db():
    """Create all tables"""
    # Models register themselves on Base when imported
    import study_cycle.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized")
