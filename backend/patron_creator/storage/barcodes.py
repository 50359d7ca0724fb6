"""Local barcode sequence store backed by SQLAlchemy.

The primary key on ``barcodes.barcode`` decides races: a reservation only
counts when the conditional UPDATE (or INSERT) that marks a row used
actually touched that row.
"""

from __future__ import annotations

import logging

from sqlalchemy import Boolean, Column, DateTime, String, create_engine, false, func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, declarative_base, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from patron_creator import config

logger = logging.getLogger(__name__)

Base = declarative_base()


class TimestampMixin:
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class BarcodeRecord(Base, TimestampMixin):
    __tablename__ = "barcodes"

    barcode: Mapped[str] = mapped_column(String(16), primary_key=True)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())


def build_engine(url: str) -> Engine:
    if url == "sqlite://" or (url.startswith("sqlite") and ":memory:" in url):
        # One shared connection so every session sees the same in-memory database.
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


class BarcodeStore:
    """Reads and reserves barcodes in the ``barcodes`` table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        Base.metadata.create_all(self.engine)
        self._sessionmaker = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str) -> BarcodeStore:
        return cls(build_engine(url))

    @classmethod
    def from_config(cls) -> BarcodeStore:
        return cls.from_url(config.get_database_url())

    def session(self) -> Session:
        return self._sessionmaker()

    # -- Reads --

    def lowest_unused(self, prefix: str = "") -> str | None:
        with self.session() as session:
            return session.scalar(
                select(BarcodeRecord.barcode)
                .where(BarcodeRecord.used.is_(False), BarcodeRecord.barcode.startswith(prefix))
                .order_by(BarcodeRecord.barcode.asc())
                .limit(1)
            )

    def highest(self, prefix: str = "", length: int | None = None) -> str | None:
        """Return the highest barcode in the *prefix* family, used or not."""
        query = select(BarcodeRecord.barcode).where(BarcodeRecord.barcode.startswith(prefix))
        if length is not None:
            query = query.where(func.length(BarcodeRecord.barcode) == length)
        with self.session() as session:
            return session.scalar(query.order_by(BarcodeRecord.barcode.desc()).limit(1))

    def get(self, barcode: str) -> BarcodeRecord | None:
        with self.session() as session:
            return session.get(BarcodeRecord, barcode)

    def count(self, prefix: str = "") -> int:
        with self.session() as session:
            return session.scalar(
                select(func.count()).select_from(BarcodeRecord).where(
                    BarcodeRecord.barcode.startswith(prefix)
                )
            ) or 0

    def count_unused(self, prefix: str = "") -> int:
        with self.session() as session:
            return session.scalar(
                select(func.count())
                .select_from(BarcodeRecord)
                .where(BarcodeRecord.used.is_(False), BarcodeRecord.barcode.startswith(prefix))
            ) or 0

    # -- Writes --

    def claim_unused(self, barcode: str) -> bool:
        """Mark an existing unused *barcode* as used.

        Returns False when another writer claimed it first.
        """
        with self.session() as session:
            result = session.execute(
                update(BarcodeRecord)
                .where(BarcodeRecord.barcode == barcode, BarcodeRecord.used.is_(False))
                .values(used=True, updated_at=func.now())
            )
            session.commit()
            return result.rowcount == 1

    def insert_used(self, barcode: str) -> bool:
        """Insert *barcode* already marked used.

        Returns False when the barcode exists, i.e. another writer got there first.
        """
        with self.session() as session:
            session.add(BarcodeRecord(barcode=barcode, used=True))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
            return True

    def mark_unused(self, barcode: str) -> bool:
        with self.session() as session:
            result = session.execute(
                update(BarcodeRecord)
                .where(BarcodeRecord.barcode == barcode)
                .values(used=False, updated_at=func.now())
            )
            session.commit()
            return result.rowcount == 1

    def seed(self, barcode: str, used: bool = True) -> bool:
        """Insert a starting barcode for a sequence; no-op if it exists."""
        with self.session() as session:
            if session.get(BarcodeRecord, barcode) is not None:
                return False
            session.add(BarcodeRecord(barcode=barcode, used=used))
            session.commit()
        logger.info("Seeded barcode %s (used=%s)", barcode, used)
        return True

