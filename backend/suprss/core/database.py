from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from suprss.core.config import settings

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # The scheduler runs feed tasks outside the request thread
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL, pool_pre_ping=True, connect_args=connect_args
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield a request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
