from typing import Dict, List, Optional, Tuple
from models.backing import (
    Backer,
    Backing,
    BackingContext,
    BackingItem,
    BankInfo,
    Cart,
    CheckoutRequest,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PayPalConfirmRequest,
)
from models.errors import CheckoutValidationError
from repository import backing as backing_repo
from repository import reward as reward_repo
from services.paypal import verify_and_capture
from services.pricing import compute_summary
from utils.env import require_env
import logging

logger = logging.getLogger(__name__)

# /checkout で保存する状態。クライアントの指定は使わない
CHECKOUT_STATUSES: Dict[PaymentMethod, Tuple[PaymentStatus, OrderStatus]] = {
    'bank': ('pending', 'pending'),
    'jpyc': ('completed', 'received'),
}


def build_cart(items: List[BackingItem]) -> Cart:
    """リターン一覧の価格でカートを組み立て直す

    クライアントが送った単価は信用しない。存在しないリターンはエラー。
    同じリターンの行は1行にまとめる。
    """
    catalog = reward_repo.get_reward_map()
    unknown = [item.reward_id for item in items if item.reward_id not in catalog]
    if unknown:
        raise CheckoutValidationError(
            f"Unknown reward_id: {', '.join(unknown)}",
            debug={"unknown_rewards": unknown},
        )

    cart = Cart()
    for item in items:
        reward = catalog[item.reward_id]
        if reward.unit_price != item.unit_price:
            logger.warning(
                "単価がリターン一覧と異なります: %s client=%d catalog=%d",
                item.reward_id, item.unit_price, reward.unit_price,
            )
        cart.add_reward(reward, item.quantity)
    return cart


def validate_shipping(backer: Backer, cart: Cart):
    """配送が必要なリターンを含む場合は住所の全項目を必須にする"""
    if not cart.has_shipping_requirement:
        return

    missing = backer.missing_shipping_fields()
    if missing:
        raise CheckoutValidationError(
            f"Shipping address is required. Missing fields: {', '.join(missing)}",
            debug={"missing_fields": missing},
        )


def checkout(request: CheckoutRequest) -> BackingContext:
    """POST /checkout の注文作成

    bank: クライアントの合計金額をそのまま保存する (照合先がないため)。状態は pending/pending。
    jpyc: transferFrom 確定後の保存。サーバー側で再計算した合計金額で completed/received。
    paypal: キャプチャと金額照合が必要なため /checkout/paypal-confirm のみ受け付ける。
    """
    method = request.backing.payment_method
    logger.info("チェックアウト開始: method=%s items=%d", method, len(request.items))

    if method == 'paypal':
        raise CheckoutValidationError(
            "PayPal payments must be confirmed via /checkout/paypal-confirm",
            debug={"payment_method": method},
        )
    if method == 'jpyc' and not request.backing.transaction_id:
        raise CheckoutValidationError("transaction_id is required for JPYC payments")

    cart = build_cart(request.items)
    validate_shipping(request.backer, cart)
    items = cart.to_backing_items()

    summary = compute_summary(items, method)
    logger.info(
        "金額計算: subtotal=%d fee=%d discount=%d total=%d",
        summary.subtotal, summary.system_fee, summary.jpyc_discount, summary.total,
    )

    total_amount = summary.total
    if method == 'bank':
        total_amount = request.backing.total_amount
        if total_amount != summary.total:
            logger.warning("銀行振込の合計金額が再計算と一致しません: client=%d server=%d", total_amount, summary.total)

    payment_status, order_status = CHECKOUT_STATUSES[method]
    backing = Backing(
        total_amount=total_amount,
        payment_method=method,
        payment_status=payment_status,
        order_status=order_status,
        transaction_id=request.backing.transaction_id,
        notes=request.backing.notes,
    )
    backing_repo.create_order(request.backer, backing, items)
    return BackingContext(backer=request.backer, backing=backing, items=items)


def confirm_paypal(request: PayPalConfirmRequest) -> BackingContext:
    """PayPal Order をキャプチャし、金額を検証してから注文を保存する"""
    logger.info("PayPal決済確認開始: %s", request.orderId)

    backer = request.to_backer()
    cart = build_cart(request.selectedRewards)
    validate_shipping(backer, cart)
    items = cart.to_backing_items()

    summary = compute_summary(items, 'paypal')
    if request.totalAmount != summary.total:
        logger.warning("クライアントの合計金額が再計算と一致しません: client=%s server=%d", request.totalAmount, summary.total)

    capture = verify_and_capture(request.orderId, summary.total)

    backing = Backing(
        total_amount=summary.total,
        payment_method='paypal',
        payment_status='completed',
        order_status='received',
        transaction_id=capture.transaction_id,
        notes=f"PayPal Payment - Order ID: {request.orderId}",
    )
    backing_repo.create_order(backer, backing, items)
    logger.info("PayPal決済の注文を作成しました: %s", backing.backing_id)
    return BackingContext(backer=backer, backing=backing, items=items)


def commit_jpyc_order(
    backer: Backer,
    items: List[BackingItem],
    transfer_tx_hash: str,
    order_id: Optional[str] = None,
) -> BackingContext:
    """transferFrom の確定後に JPYC 決済の注文を保存する"""
    cart = build_cart(items)
    validate_shipping(backer, cart)
    repriced = cart.to_backing_items()

    backing = Backing(
        total_amount=compute_summary(repriced, 'jpyc').total,
        payment_method='jpyc',
        payment_status='completed',
        order_status='received',
        transaction_id=transfer_tx_hash,
        notes=f"JPYC Payment - Order ID: {order_id}" if order_id else None,
    )
    backing_repo.create_order(backer, backing, repriced)
    return BackingContext(backer=backer, backing=backing, items=repriced)


def get_bank_info() -> BankInfo:
    return BankInfo(
        bankName=require_env("BANK_NAME"),
        branchName=require_env("BRANCH_NAME"),
        accountType=require_env("ACCOUNT_TYPE"),
        accountNumber=require_env("ACCOUNT_NUMBER"),
        accountHolder=require_env("ACCOUNT_HOLDER"),
    )
