from decimal import Decimal, ROUND_HALF_UP
from managers.sheet_manager import SheetConnectionManager, crowdfunding_sheet_id
from models.dashboard import DashboardData, DASHBOARD_LABELS, DEFAULT_TARGET_AMOUNT
import re

DASHBOARD_RANGE = 'dashboard!A:B'
REWARD_STAT_PATTERN = re.compile(r"^([R0-9]+)支援数$")


def to_number(value) -> Decimal:
    try:
        return Decimal(str(value).replace(",", "")) if value not in (None, "") else Decimal(0)
    except ArithmeticError:
        return Decimal(0)


def get_dashboard() -> DashboardData:
    """dashboard シート (A=ラベル, B=値) から集計値を取得する"""
    manager = SheetConnectionManager()
    rows = manager.get_values(crowdfunding_sheet_id(), DASHBOARD_RANGE)

    values = {}
    reward_stats = {}
    for row in rows:
        if not row or not row[0]:
            continue
        label = str(row[0])
        value = row[1] if len(row) > 1 else None

        if label in DASHBOARD_LABELS:
            values[DASHBOARD_LABELS[label]] = to_number(value)
            continue

        match = REWARD_STAT_PATTERN.match(label)
        if match:
            reward_stats[match.group(1)] = int(to_number(value))

    target_amount = int(values.get('targetAmount') or DEFAULT_TARGET_AMOUNT)
    current_amount = int(values.get('currentAmount', 0))
    # 達成率はシートの値を使わず小数第1位まで再計算する
    achievement_rate = (
        float((Decimal(current_amount) * 100 / target_amount).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
        if target_amount > 0 else 0
    )

    return DashboardData(
        targetAmount=target_amount,
        currentAmount=current_amount,
        backerCount=int(values.get('backerCount', 0)),
        achievementRate=achievement_rate,
        remainingAmount=int(values.get('remainingAmount', 0)),
        rewardStats=reward_stats,
    )
