from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from fee_engine.core.config import settings

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
