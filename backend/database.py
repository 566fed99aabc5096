import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")

engine = create_engine(DATABASE_URL, echo=config.SQL_ECHO, pool_pre_ping=True)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_booking_schema() -> None:
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)

        if 'slots_booking' not in inspector.get_table_names():
            _booking_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('slots_booking')}
        migration_steps = [
            ('is_historical', 'ALTER TABLE slots_booking ADD COLUMN is_historical BOOLEAN DEFAULT FALSE'),
            ('updated_at', 'ALTER TABLE slots_booking ADD COLUMN updated_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_slots_booking_seller_date ON slots_booking(seller_id, meeting_date)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_slots_booking_zoom_meeting ON slots_booking(zoom_meeting_id)')
            )

        _booking_schema_checked = True
