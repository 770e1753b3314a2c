from fastapi import APIRouter
from fastapi.responses import JSONResponse
from models.dashboard import DashboardResponse
from models.errors import CheckoutError
from repository import dashboard as dashboard_repo
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/dashboard", response_model=DashboardResponse, tags=["dashboard"])
def get_dashboard():
    """支援状況の集計値を取得する"""
    try:
        return DashboardResponse(data=dashboard_repo.get_dashboard())
    except CheckoutError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_content())
    except Exception as e:
        logger.error("Dashboard API error", exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "error": "Failed to fetch dashboard data"})
