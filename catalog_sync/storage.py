# catalog_sync/storage.py
"""
Document store for sync records, the audit log and small config values.

Each SyncRecord is kept whole as a JSON document. The external ids and the
variant SKUs are projected into indexed columns so the identity lookups do
not need to scan documents, and the unique constraints on the external ids
keep one record per product per store.
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from sqlalchemy import (
    JSON, DateTime, ForeignKey, Integer, String, create_engine, delete, select, text,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import PersistenceError
from .models import SyncLogEntry, SyncRecord
from .stores import Store
from .utils.logger import error


class Base(DeclarativeBase):
    pass


class ProductDoc(Base):
    __tablename__ = "products"

    sync_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    storeA_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    storeB_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    written_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ProductSku(Base):
    __tablename__ = "product_skus"

    sync_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("products.sync_id", ondelete="CASCADE"), primary_key=True
    )
    sku: Mapped[str] = mapped_column(String(255), primary_key=True, index=True)


class SyncLogRow(Base):
    __tablename__ = "sync_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sync_id: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)
    operation: Mapped[str] = mapped_column(String(32), index=True)
    status: Mapped[str] = mapped_column(String(16), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)


class ConfigRow(Base):
    __tablename__ = "config"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def make_engine(url: str, echo: bool = False):
    if url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection so every session sees the same in-memory db
        return create_engine(
            "sqlite://", echo=echo, poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    if url.startswith("sqlite"):
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(url, echo=echo, pool_pre_ping=True)


class DocumentStore:
    def __init__(self, url: str = "sqlite://", echo: bool = False):
        self.engine = make_engine(url, echo=echo)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False, autoflush=False)
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            error(f"[store] integrity error: {e.orig}")
            raise PersistenceError(f"Integrity error: {e.orig}") from e
        except SQLAlchemyError as e:
            session.rollback()
            error(f"[store] {e}")
            raise PersistenceError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()

    # =========================================================
    # Sync records
    # =========================================================

    def get(self, sync_id: str) -> Optional[SyncRecord]:
        with self._session() as s:
            row = s.get(ProductDoc, sync_id)
            return SyncRecord.from_dict(row.data) if row else None

    def find_by_store_id(self, store: Store, external_id) -> Optional[SyncRecord]:
        if external_id is None:
            return None
        column = ProductDoc.storeA_id if store is Store.STORE_A else ProductDoc.storeB_id
        with self._session() as s:
            row = s.scalars(select(ProductDoc).where(column == str(external_id))).first()
            return SyncRecord.from_dict(row.data) if row else None

    def find_by_sku(self, sku: str) -> Optional[SyncRecord]:
        if not sku:
            return None
        with self._session() as s:
            row = s.scalars(
                select(ProductDoc)
                .join(ProductSku, ProductSku.sync_id == ProductDoc.sync_id)
                .where(ProductSku.sku == sku)
                .order_by(ProductDoc.written_at)
            ).first()
            return SyncRecord.from_dict(row.data) if row else None

    def save(self, record: SyncRecord) -> SyncRecord:
        """Insert or replace the whole document."""
        with self._session() as s:
            self._write(s, record)
        return record

    def mutate(self, sync_id: str, fn: Callable[[SyncRecord], None]) -> Optional[SyncRecord]:
        """Read-modify-write one document inside a single transaction."""
        with self._session() as s:
            row = s.get(ProductDoc, sync_id, with_for_update=True)
            if row is None:
                return None
            record = SyncRecord.from_dict(row.data)
            fn(record)
            record.version += 1
            self._write(s, record, row)
            return record

    def update_variant_inventory(self, sync_id: str, sku: str, quantities: dict[Store, int]) -> Optional[SyncRecord]:
        """Record per-store quantities for the variant with this SKU."""
        def apply(record: SyncRecord):
            variant = record.variant_by_sku(sku)
            if variant is not None:
                for store, qty in quantities.items():
                    variant.set_quantity(store, qty)
        return self.mutate(sync_id, apply)

    def delete(self, sync_id: str) -> bool:
        with self._session() as s:
            s.execute(delete(ProductSku).where(ProductSku.sync_id == sync_id))
            result = s.execute(delete(ProductDoc).where(ProductDoc.sync_id == sync_id))
            return result.rowcount > 0

    def all_products(self, limit: int = 50, offset: int = 0) -> list[SyncRecord]:
        with self._session() as s:
            rows = s.scalars(
                select(ProductDoc)
                .order_by(ProductDoc.written_at.desc(), ProductDoc.sync_id)
                .limit(limit)
                .offset(offset)
            ).all()
            return [SyncRecord.from_dict(r.data) for r in rows]

    def iter_products(self, batch_size: int = 200) -> Iterator[SyncRecord]:
        offset = 0
        while True:
            with self._session() as s:
                rows = s.scalars(
                    select(ProductDoc).order_by(ProductDoc.sync_id).limit(batch_size).offset(offset)
                ).all()
                batch = [SyncRecord.from_dict(r.data) for r in rows]
            yield from batch
            if len(batch) < batch_size:
                return
            offset += batch_size

    def _write(self, s: Session, record: SyncRecord, row: Optional[ProductDoc] = None) -> None:
        if row is None:
            row = s.get(ProductDoc, record.sync_id)
        if row is None:
            row = ProductDoc(sync_id=record.sync_id)
            s.add(row)
        row.storeA_id = record.storeA_id
        row.storeB_id = record.storeB_id
        row.data = record.to_dict()
        row.written_at = _now()
        s.flush()
        s.execute(delete(ProductSku).where(ProductSku.sync_id == record.sync_id))
        for sku in {v.sku for v in record.variants if v.sku}:
            s.add(ProductSku(sync_id=record.sync_id, sku=sku))
        s.flush()

    # =========================================================
    # Audit log
    # =========================================================

    def append_log(self, entry: SyncLogEntry) -> SyncLogEntry:
        ts = _now()
        entry.timestamp = entry.timestamp or ts.isoformat()
        with self._session() as s:
            s.add(SyncLogRow(
                sync_id=entry.sync_id,
                operation=entry.operation.value,
                status=entry.status.value,
                timestamp=ts,
                data=entry.to_dict(),
            ))
        return entry

    def list_logs(self, limit: int = 100, operation: Optional[str] = None,
                  status: Optional[str] = None) -> list[dict]:
        q = select(SyncLogRow).order_by(SyncLogRow.timestamp.desc(), SyncLogRow.id.desc())
        if operation:
            q = q.where(SyncLogRow.operation == operation)
        if status:
            q = q.where(SyncLogRow.status == status)
        with self._session() as s:
            rows = s.scalars(q.limit(limit)).all()
            return [dict(r.data, id=r.id) for r in rows]

    # =========================================================
    # Config
    # =========================================================

    def get_config(self, key: str, default=None):
        with self._session() as s:
            row = s.get(ConfigRow, key)
            return row.value if row else default

    def set_config(self, key: str, value) -> None:
        with self._session() as s:
            row = s.get(ConfigRow, key)
            if row is None:
                s.add(ConfigRow(key=key, value=value))
            else:
                row.value = value

    def ping(self) -> bool:
        with self._session() as s:
            s.execute(text("SELECT 1")).scalar()
        return True
