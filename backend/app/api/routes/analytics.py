"""
Analytics API: dashboard cards and the orders chart.

Totals for the last 7/30/90 days, % change versus the window before, and a
zero-filled daily order series.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_store, get_db
from app.models.store import Store
from app.services.analytics import store_analytics

router = APIRouter()


@router.get("")
def get_analytics(
    period: Optional[str] = Query(None, description="7d | 30d | 90d (default 30d)"),
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
):
    return {"ok": True, "analytics": store_analytics(db, store, period)}
