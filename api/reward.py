from fastapi import APIRouter
from fastapi.responses import JSONResponse
from models.backing import RewardData
from models.errors import CheckoutError
from repository import reward as reward_repo
from typing import List
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/rewards", response_model=List[RewardData], tags=["rewards"])
def list_rewards():
    """リターン一覧を取得する"""
    try:
        return reward_repo.get_rewards()
    except CheckoutError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_content())
    except Exception as e:
        logger.error("Rewards API error", exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "error": "Failed to fetch rewards data"})
