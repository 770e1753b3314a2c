from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR, localcontext
from typing import Iterable, Union
from models.backing import BackingItem, CheckoutSummary, PaymentMethod
from models.jpyc import JPYC_DECIMALS

SYSTEM_FEE_RATE = Decimal("0.05")


def calculate_subtotal(items: Iterable[BackingItem]) -> int:
    """各リターンの (unit_price × quantity) の合計"""
    return sum(item.unit_price * item.quantity for item in items)


def calculate_system_fee(subtotal: int) -> int:
    # 手数料の時点で円単位に四捨五入する
    return int((Decimal(subtotal) * SYSTEM_FEE_RATE).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_summary(items: Iterable[BackingItem], method: PaymentMethod) -> CheckoutSummary:
    """決済方法ごとの明細を計算する

    銀行振込・PayPal はシステム利用料5%を上乗せする。
    JPYC も同じ5%を計上したうえで同額を割引として差し引くため、合計は小計と一致する。
    副作用はなく、表示用とサーバー側の再計算の両方で使う。
    """
    if method not in ('bank', 'paypal', 'jpyc'):
        raise ValueError(f"未対応の決済方法です: {method}")

    subtotal = calculate_subtotal(items)
    system_fee = calculate_system_fee(subtotal)
    jpyc_discount = system_fee if method == 'jpyc' else 0

    return CheckoutSummary(
        subtotal=subtotal,
        system_fee=system_fee,
        jpyc_discount=jpyc_discount,
        total=subtotal + system_fee - jpyc_discount,
    )


def yen_to_wei(amount: Union[int, str, Decimal]) -> int:
    """円建ての金額を JPYC の最小単位 (18桁) に変換する

    JPYC は 1 JPYC = 1円。浮動小数点を通さずに整数で計算する。
    """
    if isinstance(amount, float):
        raise TypeError("金額に float は使えません")
    with localcontext() as ctx:
        ctx.prec = 100
        value = Decimal(str(amount)) * (Decimal(10) ** JPYC_DECIMALS)
        return int(value.to_integral_value(rounding=ROUND_FLOOR))


def wei_to_yen(amount_wei: int) -> Decimal:
    return Decimal(amount_wei) / (Decimal(10) ** JPYC_DECIMALS)
