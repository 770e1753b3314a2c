from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional, Union
from managers.paypal_manager import PayPalManager
from models.errors import AmountMismatchError, CaptureFailedError
from pydantic import BaseModel
import logging

logger = logging.getLogger(__name__)


class CaptureResult(BaseModel):
    captured_amount: Decimal
    transaction_id: str
    status: str


def extract_paypal_amount(order_data: Dict[str, Any]) -> Decimal:
    """キャプチャ結果の最初の purchase_unit から金額を取り出す"""
    try:
        value = order_data["purchase_units"][0]["amount"]["value"]
        return Decimal(str(value))
    except (KeyError, IndexError, TypeError, InvalidOperation) as e:
        raise CaptureFailedError("PayPal order amount not found") from e


def extract_transaction_id(order_data: Dict[str, Any]) -> str:
    """キャプチャ ID (なければ PayPal Order ID)"""
    try:
        return order_data["purchase_units"][0]["payments"]["captures"][0]["id"]
    except (KeyError, IndexError, TypeError):
        return order_data.get("id", "")


def to_cents(amount: Union[int, Decimal]) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def verify_and_capture(external_order_id: str, expected_total: int, manager: Optional[PayPalManager] = None) -> CaptureResult:
    """PayPal Order をキャプチャし、金額がサーバー側で再計算した合計と一致するか検証する

    比較は整数の銭 (cent) 単位で行う。一致しなければ AmountMismatchError。
    """
    manager = manager or PayPalManager()
    order_data = manager.capture_order(external_order_id)
    captured_amount = extract_paypal_amount(order_data)

    logger.info("PayPal金額: %s / 期待金額: %s", captured_amount, expected_total)
    if to_cents(captured_amount) != to_cents(expected_total):
        logger.warning("金額が一致しません: PayPal=%s, Expected=%s", captured_amount, expected_total)
        raise AmountMismatchError(
            "Payment amount mismatch",
            debug={"captured": str(captured_amount), "expected": expected_total},
        )

    logger.info("金額検証OK")
    return CaptureResult(
        captured_amount=captured_amount,
        transaction_id=extract_transaction_id(order_data),
        status=order_data.get("status", ""),
    )
