from managers.sheet_manager import SheetConnectionManager, crowdfunding_sheet_id
from models.backing import RewardData
from typing import Dict, List
import logging

logger = logging.getLogger(__name__)

REWARD_RANGE = 'rewards!A:F'


def get_rewards() -> List[RewardData]:
    """rewards シートからリターン一覧を取得する"""
    manager = SheetConnectionManager()
    rows = manager.get_values(crowdfunding_sheet_id(), REWARD_RANGE)

    # 1行目はヘッダー
    rewards = [RewardData.from_row(row) for row in rows[1:] if row and row[0]]
    logger.info("リターンを%d件取得しました", len(rewards))
    return rewards


def get_reward_map() -> Dict[str, RewardData]:
    return {reward.reward_id: reward for reward in get_rewards()}
