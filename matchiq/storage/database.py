"""Database connection management and initialization."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from matchiq.storage.models import Base, ExchangeRate

logger = logging.getLogger(__name__)

# Default database path
DATA_DIR = Path(__file__).parent.parent.parent / "data"
DEFAULT_DB_PATH = DATA_DIR / "matchiq.db"

# Module-level engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def get_engine(db_path: Path | None = None, url: str | None = None) -> Engine:
    """Get or create the SQLAlchemy engine.

    Args:
        db_path: Optional path to a SQLite file. Defaults to data/matchiq.db.
        url: Optional database URL; takes precedence over db_path.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine

    if _engine is None:
        if url is None:
            if db_path is None:
                db_path = DEFAULT_DB_PATH

            # Ensure data directory exists
            db_path.parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite:///{db_path}"

        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, echo=False, connect_args=connect_args)

    return _engine


def get_session_factory() -> sessionmaker[Session]:
    global _session_factory

    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine())
    return _session_factory


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """Transactional scope around a series of operations.

    Commits on success, rolls back on any exception and re-raises.
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def seed_exchange_rates(session: Session, rates: dict[str, float]) -> int:
    """Insert rates for currency codes not yet in the table.

    Returns:
        Number of rows added.
    """
    existing = set(session.scalars(select(ExchangeRate.currency_code)))
    added = 0
    for code, rate in rates.items():
        if code.upper() in existing:
            continue
        session.add(ExchangeRate(currency_code=code.upper(), rate_to_usd=rate))
        added += 1
    if added:
        logger.info(f"Seeded {added} exchange rates")
    return added


def init_db(db_path: Path | None = None, url: str | None = None) -> None:
    """Initialize the database by creating all tables and seeding exchange rates.

    Args:
        db_path: Optional path to the database file. Defaults to data/matchiq.db.
        url: Optional database URL; takes precedence over db_path.
    """
    # Imported here to keep storage free of matching imports at module load
    from matchiq.matching.currency import DEFAULT_RATES

    engine = get_engine(db_path, url)
    Base.metadata.create_all(engine)
    with session_scope() as session:
        seed_exchange_rates(session, DEFAULT_RATES)
