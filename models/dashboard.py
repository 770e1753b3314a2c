from pydantic import BaseModel
from typing import Dict

DEFAULT_TARGET_AMOUNT = 100000

# dashboard シート A列のラベル
DASHBOARD_LABELS: Dict[str, str] = {
    '目標金額': 'targetAmount',
    '現在の支援金額': 'currentAmount',
    '支援者数': 'backerCount',
    '目標達成率 (%)': 'achievementRate',
    '残り金額': 'remainingAmount',
}


class DashboardData(BaseModel):
    targetAmount: int = DEFAULT_TARGET_AMOUNT
    currentAmount: int = 0
    backerCount: int = 0
    achievementRate: float = 0
    remainingAmount: int = 0
    rewardStats: Dict[str, int] = {}


class DashboardResponse(BaseModel):
    success: bool = True
    data: DashboardData
