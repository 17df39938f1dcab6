# scripts/init_db.py
"""Create the tables in the configured database and print a connection check."""

from pathlib import Path

from sqlalchemy import text

from spabooker.config import settings
from spabooker.database import SessionLocal, engine
from spabooker.models import Base
from spabooker.models.entities import Bookings


def main():
    url = settings.resolved_database_url
    if url.startswith("sqlite:///"):
        Path(url.replace("sqlite:///", "")).parent.mkdir(parents=True, exist_ok=True)

    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        print("DB OK:", db.execute(text("SELECT 1")).scalar())
        print("Bookings:", db.query(Bookings).count())
    finally:
        db.close()


if __name__ == "__main__":
    main()
