"""
仪表盘路由
"""
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import BookingStatus
from app.security.auth import CallerContext, require_librarian
from app.services.statistics_service import StatisticsService

router = APIRouter(prefix="/dashboard", tags=["统计报表"])


@router.get("/librarian")
def get_librarian_dashboard(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[BookingStatus] = None,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(require_librarian)
):
    """获取本馆仪表盘数据"""
    service = StatisticsService(db)
    return service.get_library_stats(ctx.library_id, start_date, end_date, status)
