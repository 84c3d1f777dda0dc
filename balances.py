"""Opening/closing balances and movement totals, computed from the movement journal."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

import authz
from authz import Actor
from crud import as_utc, build_movements_query, utcnow
from models import BalanceSummary
from orm import MovementORM


def current_quarter(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    now = now or utcnow()
    first_month = 3 * ((now.month - 1) // 3) + 1
    start = datetime(now.year, first_month, 1, tzinfo=timezone.utc)
    if first_month == 10:
        end = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(now.year, first_month + 3, 1, tzinfo=timezone.utc)
    return start, end


def _sum(db: Session, stmt) -> int:
    sub = stmt.subquery()
    total = db.execute(select(func.coalesce(func.sum(sub.c.quantity_change), 0))).scalar_one()
    return int(total)


def balance_summary(
    db: Session,
    actor: Actor,
    *,
    base_id: Optional[str] = None,
    equipment_type_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> BalanceSummary:
    authz.require(actor, authz.READ)
    base_id = authz.base_scope(actor, base_id)

    if start is None or end is None:
        q_start, q_end = current_quarter()
        start = start or q_start
        end = end or q_end
    start, end = as_utc(start), as_utc(end)

    def period(movement_type: str) -> int:
        stmt = build_movements_query(
            base_id=base_id,
            equipment_type_id=equipment_type_id,
            movement_type=movement_type,
            start=start,
            end=end,
        )
        return _sum(db, stmt)

    opening_stmt = build_movements_query(base_id=base_id, equipment_type_id=equipment_type_id).where(
        MovementORM.created_at < start
    )
    opening = _sum(db, opening_stmt)

    purchases = period("PURCHASE")
    transfers_in = period("TRANSFER_IN")
    transfers_out = -period("TRANSFER_OUT")
    # reported apart from transfers_out: a cancel may land in a later period than its initiation
    transfers_cancelled = period("TRANSFER_CANCEL")
    expended = -period("EXPENDITURE")
    lost = -period("LOSS")

    net = purchases + transfers_in + transfers_cancelled - transfers_out
    return BalanceSummary(
        base_id=base_id,
        equipment_type_id=equipment_type_id,
        period_start=start,
        period_end=end,
        opening_balance=opening,
        purchases=purchases,
        transfers_in=transfers_in,
        transfers_out=transfers_out,
        transfers_cancelled=transfers_cancelled,
        expended=expended,
        lost=lost,
        net_movement=net,
        closing_balance=opening + net - expended - lost,
    )
