from managers.sheet_manager import SheetConnectionManager, customer_sheet_id
from models.backing import Backer, Backing, BackingItem, BackingItemRow, CommitResult, format_sequence_id
from models.errors import PartialCommitError
from typing import Dict, List
import logging
import re

logger = logging.getLogger(__name__)

BACKER_RANGE = 'backers!A:J'
BACKING_RANGE = 'backings!A:J'
BACKING_ITEM_RANGE = 'backing_items!A:G'

# 採番対象の ID 列 (A列)
ID_COLUMNS: Dict[str, str] = {
    'B': 'backers!A:A',
    'BACK': 'backings!A:A',
    'BIT': 'backing_items!A:A',
}


def get_max_sequence(prefix: str) -> int:
    """ID 列を走査して prefix + 数字 の最大値を返す (該当なしは 0)"""
    manager = SheetConnectionManager()
    rows = manager.get_values(customer_sheet_id(), ID_COLUMNS[prefix])
    pattern = re.compile(rf"^{prefix}(\d+)$")

    max_num = 0
    for row in rows:
        if not row:
            continue
        match = pattern.match(str(row[0]))
        if match:
            max_num = max(max_num, int(match.group(1)))
    return max_num


def next_id(prefix: str) -> str:
    """次の連番 ID を払い出す

    読み取りと追記の間にロックはないため、同時コミットでは同じ ID が払い出されうる。
    """
    next_num = get_max_sequence(prefix) + 1
    new_id = format_sequence_id(prefix, next_num)
    logger.info("次のIDを払い出しました: %s", new_id)
    return new_id


def create_backer(backer: Backer) -> str:
    """backers シートに支援者を追加して backer_id を返す"""
    manager = SheetConnectionManager()
    logger.info("支援者を追加します: %s", backer.name)

    backer.backer_id = next_id('B')
    backer.set_timestamp('create')
    manager.append_values(customer_sheet_id(), BACKER_RANGE, [backer.to_row()])

    logger.info("支援者を追加しました: %s", backer.backer_id)
    return backer.backer_id


def create_backing(backer_id: str, backing: Backing) -> str:
    """backings シートに支援ヘッダーを追加して backing_id を返す"""
    manager = SheetConnectionManager()

    backing.backing_id = next_id('BACK')
    backing.backer_id = backer_id
    backing.set_timestamp()
    logger.info(
        "支援を追加します: %s (backer=%s, amount=%d, method=%s, status=%s/%s)",
        backing.backing_id, backer_id, backing.total_amount,
        backing.payment_method, backing.payment_status, backing.order_status,
    )
    manager.append_values(customer_sheet_id(), BACKING_RANGE, [backing.to_row()])

    logger.info("支援を追加しました: %s", backing.backing_id)
    return backing.backing_id


def create_backing_items(backing_id: str, items: List[BackingItem]) -> List[str]:
    """backing_items シートに支援明細を追加する (1リターン1行、1回の追記)"""
    if not items:
        return []

    manager = SheetConnectionManager()
    # 同じ注文の明細は1回の走査から連番で払い出す
    start = get_max_sequence('BIT') + 1
    rows = [
        BackingItemRow.from_backing_item(format_sequence_id('BIT', start + i), backing_id, item)
        for i, item in enumerate(items)
    ]
    for row in rows:
        logger.info("  - %s: %s x %d = ¥%d", row.backing_item_id, row.reward_id, row.quantity, row.subtotal)

    manager.append_values(customer_sheet_id(), BACKING_ITEM_RANGE, [row.to_row() for row in rows])
    logger.info("支援明細を%d件追加しました", len(rows))
    return [row.backing_item_id for row in rows]


def create_order(backer: Backer, backing: Backing, items: List[BackingItem]) -> CommitResult:
    """支援者 → 支援ヘッダー → 支援明細 の順に書き込む

    シートにはトランザクションがないため、2件目以降で失敗すると
    先に書き込んだ行は残る。その場合は書き込み済みの ID を付けて PartialCommitError を送出する。
    """
    logger.info("注文作成を開始します (items=%d)", len(items))

    backer_id = create_backer(backer)

    try:
        backing_id = create_backing(backer_id, backing)
    except Exception as e:
        logger.error("支援ヘッダーの書き込みに失敗しました。孤立した支援者: %s", backer_id, exc_info=True)
        raise PartialCommitError(
            "注文の保存が途中で失敗しました",
            debug={"backer_id": backer_id, "failed": "backing", "error": str(e)},
        ) from e

    try:
        backing_item_ids = create_backing_items(backing_id, items)
    except Exception as e:
        logger.error(
            "支援明細の書き込みに失敗しました。孤立した支援: %s (backer=%s)", backing_id, backer_id, exc_info=True
        )
        raise PartialCommitError(
            "注文の保存が途中で失敗しました",
            debug={"backer_id": backer_id, "backing_id": backing_id, "failed": "backing_items", "error": str(e)},
        ) from e

    logger.info(
        "注文を作成しました: backer=%s backing=%s amount=¥%d items=%d",
        backer_id, backing_id, backing.total_amount, len(items),
    )
    return CommitResult(backer_id=backer_id, backing_id=backing_id, backing_item_ids=backing_item_ids)
