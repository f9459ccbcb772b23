from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db.session import get_db
from ..deps.auth import require_admin
from ..schemas.reorder import StockCheckOut
from ..services.stock_monitor import run_stock_check

router = APIRouter(prefix="/api/v1/stock", tags=["stock"], dependencies=[Depends(require_admin)])


@router.post("/check", response_model=StockCheckOut, summary="Run the stock level check now")
def api_run_check(db: Session = Depends(get_db)):
    return run_stock_check(db)
