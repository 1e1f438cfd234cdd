from sqlalchemy import create_engine, event, Column, Integer, String, Date, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base, sessionmaker, scoped_session

from config import get_settings

Base = declarative_base()

# ==========================================
# MODELS (Tables)
# ==========================================

class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        # One reservation per spot per day, one spot per user per day
        UniqueConstraint("date", "spot", name="uq_reservations_date_spot"),
        UniqueConstraint("date", "email", name="uq_reservations_date_email"),
        Index("ix_reservations_email_date", "email", "date"),
    )

    id = Column(String(32), primary_key=True)
    email = Column(String, nullable=False)  # lower-cased, trimmed
    date = Column(Date, nullable=False, index=True)
    spot = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class CancellationCode(Base):
    __tablename__ = "cancellation_codes"

    reservation_id = Column(String(32), primary_key=True)  # at most one live code per reservation
    code = Column(String(6), nullable=False)
    email = Column(String, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


# ==========================================
# ENGINE
# ==========================================

def _sqlite_on_connect(dbapi_connection, connection_record):
    # Let SQLAlchemy emit BEGIN itself
    dbapi_connection.isolation_level = None


def _sqlite_on_begin(conn):
    # Take the write lock up front: checks and insert of a reservation run serialized
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(database_url: str):
    """
    Creates an engine whose transactions are serializable.

    SQLite starts every transaction with BEGIN IMMEDIATE; other backends run
    at SERIALIZABLE isolation.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        event.listen(engine, "connect", _sqlite_on_connect)
        event.listen(engine, "begin", _sqlite_on_begin)
        return engine

    return create_engine(database_url, echo=False, isolation_level="SERIALIZABLE", pool_pre_ping=True)


def create_session_factory(engine):
    return scoped_session(sessionmaker(bind=engine, expire_on_commit=False))


engine = create_db_engine(get_settings().database_url)
SessionLocal = create_session_factory(engine)


def init_db(bind=None):
    """Creates the schema if missing."""
    Base.metadata.create_all(bind or engine)


if __name__ == "__main__":
    init_db()
