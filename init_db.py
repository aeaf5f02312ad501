# init_db.py

from aniverse.config import settings
from aniverse.db.session import Base, build_engine
import aniverse.db.models  # noqa: F401  registers tables on Base.metadata


def init():
    print("Connecting to database...")
    engine = build_engine(settings.DATABASE_URL)

    print("Creating tables (if not exist)...")
    Base.metadata.create_all(bind=engine)

    print("Done.")


if __name__ == "__main__":
    init()
