"""
Write helpers for the storesync mirror tables.

Implements the store operations the jobs rely on: bulk create with duplicate
skip, upsert by natural key, delete-many and find-first. Statements are built
with the dialect's INSERT .. ON CONFLICT so the same code runs on PostgreSQL
and on SQLite.
"""

from collections.abc import Iterator, Sequence

from sqlalchemy import Table, delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from .deps import get_session
from .models import LineItem, LineItemSubscription, Order, Product, Variant

# Rows per multi-VALUES statement; keeps bind parameters under driver limits
CHUNK_SIZE = 500


def _insert_for(session: Session, table: Table):
    """Dialect-specific INSERT supporting ON CONFLICT clauses."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(table)
    return pg_insert(table)


def _chunks(rows: Sequence[dict], size: int = CHUNK_SIZE) -> Iterator[Sequence[dict]]:
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


def _dedupe(rows: Sequence[dict], key: str) -> list[dict]:
    """Keep the last row per key; ON CONFLICT cannot touch a row twice per statement."""
    return list({row[key]: row for row in rows}.values())


def _exec_insert_skip_duplicates(session: Session, table: Table, rows: Sequence[dict]) -> int:
    """Bulk insert ignoring rows whose key already exists. Returns inserted count."""
    inserted = 0
    for chunk in _chunks(rows):
        stmt = _insert_for(session, table).values(list(chunk)).on_conflict_do_nothing()
        result = session.execute(stmt)
        inserted += max(result.rowcount or 0, 0)
    return inserted


def _exec_upsert(
    session: Session,
    table: Table,
    rows: Sequence[dict],
    conflict_col: str,
    update_cols: Sequence[str],
) -> tuple[int, int]:
    """Execute a bulk upsert and return (inserted_count, updated_count).

    Existing keys are looked up first so the counts do not depend on
    dialect-specific RETURNING tricks.
    """
    if not rows:
        return 0, 0

    rows = _dedupe(rows, conflict_col)
    key_column = table.c[conflict_col]
    inserted_count = updated_count = 0

    for chunk in _chunks(rows):
        keys = [row[conflict_col] for row in chunk]
        existing = set(session.scalars(select(key_column).where(key_column.in_(keys))))

        stmt = _insert_for(session, table).values(list(chunk))
        if update_cols:
            update_values = {c: stmt.excluded[c] for c in update_cols}
            stmt = stmt.on_conflict_do_update(index_elements=[conflict_col], set_=update_values)
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=[conflict_col])
        session.execute(stmt)

        updated = sum(1 for key in keys if key in existing)
        updated_count += updated
        inserted_count += len(keys) - updated

    return inserted_count, updated_count


# =============================================================================
# CATALOG
# =============================================================================

def clear_catalog(session: Session | None = None) -> tuple[int, int]:
    """
    Delete every variant, then every product (foreign key order).
    Returns (variants_deleted, products_deleted).
    """

    def _run(sess: Session) -> tuple[int, int]:
        variants_deleted = sess.execute(delete(Variant)).rowcount
        products_deleted = sess.execute(delete(Product)).rowcount
        return variants_deleted, products_deleted

    if session is not None:
        return _run(session)
    with get_session() as sess:
        return _run(sess)


def insert_products(rows: list[dict], session: Session | None = None) -> int:
    """Create products, skipping ids that already exist. Returns inserted count."""

    def _run(sess: Session) -> int:
        return _exec_insert_skip_duplicates(sess, Product.__table__, rows)

    if session is not None:
        return _run(session)
    with get_session() as sess:
        return _run(sess)


def insert_variants(rows: list[dict], session: Session | None = None) -> int:
    """Create variants, skipping ids that already exist. Returns inserted count."""

    def _run(sess: Session) -> int:
        return _exec_insert_skip_duplicates(sess, Variant.__table__, rows)

    if session is not None:
        return _run(session)
    with get_session() as sess:
        return _run(sess)


# =============================================================================
# ORDERS
# =============================================================================

def upsert_orders(rows: list[dict], session: Session | None = None) -> tuple[int, int]:
    """
    Upsert orders with conflict resolution on order_id.
    Every mapped column is overwritten (last write wins).
    Returns (inserted_count, updated_count).
    """

    def _run(sess: Session) -> tuple[int, int]:
        update_cols = [c.name for c in Order.__table__.columns if c.name != "order_id"]
        return _exec_upsert(
            sess,
            Order.__table__,
            rows,
            conflict_col="order_id",
            update_cols=[c for c in update_cols if rows and c in rows[0]],
        )

    if session is not None:
        return _run(session)
    with get_session() as sess:
        return _run(sess)


def replace_line_items(
    order_ids: list[int], rows: list[dict], session: Session | None = None
) -> tuple[int, int]:
    """
    Replace the full line item set of the given orders.
    Returns (deleted_count, inserted_count).
    """

    def _run(sess: Session) -> tuple[int, int]:
        if not order_ids:
            return 0, 0
        deleted = sess.execute(
            delete(LineItem).where(LineItem.order_id.in_(order_ids))
        ).rowcount
        inserted = _exec_insert_skip_duplicates(sess, LineItem.__table__, _dedupe(rows, "id"))
        return deleted, inserted

    if session is not None:
        return _run(session)
    with get_session() as sess:
        return _run(sess)


def find_line_item(
    order_id: int,
    title: str | None,
    variant_id: int | None,
    sku: str | None = None,
    session: Session | None = None,
) -> LineItem | None:
    """
    Find the first local line item matching an order and product identity.

    The SKU only narrows the match when one is given.
    """

    def _run(sess: Session) -> LineItem | None:
        filters = {"order_id": order_id, "title": title, "variant_id": variant_id}
        if sku is not None:
            filters["sku"] = sku
        return sess.query(LineItem).filter_by(**filters).order_by(LineItem.id).first()

    if session is not None:
        return _run(session)
    with get_session() as sess:
        return _run(sess)


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

def upsert_line_item_subscription(row: dict, session: Session | None = None) -> tuple[int, int]:
    """
    Upsert one subscription row keyed by line_item_id.
    Only the columns present in the row are overwritten on update.
    Returns (inserted_count, updated_count).
    """

    def _run(sess: Session) -> tuple[int, int]:
        return _exec_upsert(
            sess,
            LineItemSubscription.__table__,
            [row],
            conflict_col="line_item_id",
            update_cols=[c for c in row if c != "line_item_id"],
        )

    if session is not None:
        return _run(session)
    with get_session() as sess:
        return _run(sess)
