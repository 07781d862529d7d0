"""
Watermark management for the incremental sync jobs.

Stores the high-water marks that bound the next run:
- last_order_update: single row (id 1), newest order updated_at processed
- recharge_order_id: one row appended per subscription sync run
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..utils.time_windows import ensure_utc
from .deps import get_session
from .models import LastOrderUpdate, RechargeOrderWatermark
from .upserts import _exec_upsert

logger = logging.getLogger(__name__)

ORDER_WATERMARK_ROW_ID = 1


def get_last_order_update(session: Session | None = None) -> datetime | None:
    """
    Get the stored order watermark.

    Returns:
        Last processed order updated_at (UTC) or None if never synced
    """

    def _query(sess: Session) -> datetime | None:
        row = sess.get(LastOrderUpdate, ORDER_WATERMARK_ROW_ID)
        if row is None or row.last_update is None:
            return None
        return ensure_utc(row.last_update)

    if session:
        return _query(session)

    with get_session() as sess:
        return _query(sess)


def set_last_order_update(last_update: datetime, session: Session | None = None) -> None:
    """
    Upsert the single order watermark row.

    Args:
        last_update: Newest order updated_at processed (UTC)
        session: Optional database session
    """
    last_update = ensure_utc(last_update)

    def _update(sess: Session) -> None:
        _exec_upsert(
            sess,
            LastOrderUpdate.__table__,
            [{"id": ORDER_WATERMARK_ROW_ID, "last_update": last_update}],
            conflict_col="id",
            update_cols=["last_update"],
        )
        sess.commit()
        logger.debug(f"Updated last_order_update to {last_update.isoformat()}")

    if session:
        _update(session)
    else:
        with get_session() as sess:
            _update(sess)


def record_recharge_order_id(last_order_id: int, session: Session | None = None) -> None:
    """Append a ReCharge order id watermark row."""

    def _insert(sess: Session) -> None:
        sess.add(RechargeOrderWatermark(last_order_id=last_order_id))
        sess.commit()
        logger.debug(f"Recorded ReCharge order watermark {last_order_id}")

    if session:
        _insert(session)
    else:
        with get_session() as sess:
            _insert(sess)


def get_last_recharge_order_id(session: Session | None = None) -> int | None:
    """Get the most recently recorded ReCharge order id watermark."""

    def _query(sess: Session) -> int | None:
        row = (
            sess.query(RechargeOrderWatermark)
            .order_by(RechargeOrderWatermark.id.desc())
            .first()
        )
        return row.last_order_id if row else None

    if session:
        return _query(session)

    with get_session() as sess:
        return _query(sess)
