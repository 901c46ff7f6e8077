"""
SQLAlchemy bas och databasanslutning
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from huvudbok.config import BASE_DIR, DATABASE_URL


def create_session_factory(database_url: str, **engine_kwargs):
    """Skapa engine och session factory för en given databas-URL"""
    if database_url.startswith("sqlite"):
        engine_kwargs.setdefault("connect_args", {"check_same_thread": False})  # Krävs för SQLite
    db_engine = create_engine(database_url, **engine_kwargs)
    return db_engine, sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


# Skapa engine och session factory
engine, SessionLocal = create_session_factory(DATABASE_URL)

# Bas för alla modeller
Base = declarative_base()


def get_db():
    """Dependency för att få databas-session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initiera databasen och skapa alla tabeller"""
    if DATABASE_URL.startswith("sqlite:///"):
        (BASE_DIR / "data").mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=engine)
