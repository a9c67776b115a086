import os
from sqlalchemy import create_engine, event
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv

# Load environment variables from a .env file (for local development)
load_dotenv()

# Falls back to a SQLite file next to wherever the app is started
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./graph.db")

# Demoted roots lose the first character of their name unless this is off
STRIP_DEMOTED_NAME = os.getenv("STRIP_DEMOTED_NAME", "true").strip().lower() not in ("0", "false", "no", "off")

if DATABASE_URL.startswith("postgres"):
    engine = create_engine(DATABASE_URL)
else:
    # SQLite requires connect_args; an in-memory database must share one connection
    engine_kwargs = {"connect_args": {"check_same_thread": False}}
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        engine_kwargs["poolclass"] = StaticPool
    engine = create_engine(DATABASE_URL, **engine_kwargs)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
