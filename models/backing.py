from pydantic import BaseModel, Field, field_validator, computed_field
from typing import List, Optional, Any, Literal
from datetime import datetime, timezone
from zoneinfo import ZoneInfo
from decimal import Decimal
import re

PaymentMethod = Literal['bank', 'paypal', 'jpyc']
PaymentStatus = Literal['pending', 'completed', 'failed']
OrderStatus = Literal['pending', 'received', 'shipped', 'completed']

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SHIPPING_FIELDS = ['phone_number', 'postal_code', 'prefecture', 'city', 'address_line']
JST = ZoneInfo("Asia/Tokyo")


def format_sequence_id(prefix: str, number: int) -> str:
    return f"{prefix}{number:03d}"


def check_email(v: str) -> str:
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Invalid email format")
    return v


def cell(row: List[Any], index: int, default: Any = "") -> Any:
    return row[index] if index < len(row) and row[index] != "" else default


class RewardData(BaseModel):
    """リターン (rewards シート A:F)"""
    reward_id: str
    title: str = ""
    unit_price: int = 0
    description: str = ""
    requires_shipping: bool = False
    image_url: str = ""

    @classmethod
    def from_row(cls, row: List[Any]) -> "RewardData":
        return cls(
            reward_id=str(row[0]),
            title=str(cell(row, 1)),
            unit_price=int(Decimal(str(cell(row, 2, 0)))),
            description=str(cell(row, 3)),
            requires_shipping=str(cell(row, 4, "FALSE")).upper() == "TRUE",
            image_url=str(cell(row, 5)),
        )


class BackingItem(BaseModel):
    """カートの1行 (リターンと数量、単価のスナップショット)"""
    reward_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    unit_price: int = Field(..., ge=0)

    @computed_field
    @property
    def subtotal(self) -> int:
        return self.quantity * self.unit_price


class SelectedReward(RewardData):
    quantity: int = Field(1, ge=1)

    def to_backing_item(self) -> BackingItem:
        return BackingItem(reward_id=self.reward_id, quantity=self.quantity, unit_price=self.unit_price)


class Cart(BaseModel):
    """セッション中だけ存在する選択中のリターン"""
    selected_rewards: List[SelectedReward] = []

    def add_reward(self, reward: RewardData, quantity: int = 1):
        for selected in self.selected_rewards:
            if selected.reward_id == reward.reward_id:
                selected.quantity += quantity
                return
        self.selected_rewards.append(SelectedReward(quantity=quantity, **reward.model_dump()))

    def remove_reward(self, reward_id: str):
        self.selected_rewards = [r for r in self.selected_rewards if r.reward_id != reward_id]

    def update_quantity(self, reward_id: str, quantity: int):
        # 0以下は削除
        if quantity <= 0:
            self.remove_reward(reward_id)
            return
        for selected in self.selected_rewards:
            if selected.reward_id == reward_id:
                selected.quantity = quantity

    def clear(self):
        self.selected_rewards = []

    @property
    def total_amount(self) -> int:
        return sum(r.unit_price * r.quantity for r in self.selected_rewards)

    @property
    def has_shipping_requirement(self) -> bool:
        return any(r.requires_shipping for r in self.selected_rewards)

    def to_backing_items(self) -> List[BackingItem]:
        return [r.to_backing_item() for r in self.selected_rewards]


class CheckoutSummary(BaseModel):
    subtotal: int
    system_fee: int = Field(..., alias="systemFee")
    jpyc_discount: int = Field(..., alias="jpycDiscount")
    total: int

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }


class Backer(BaseModel):
    """支援者 (backers シート A:J)"""
    backer_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    email: str
    phone_number: Optional[str] = None
    postal_code: Optional[str] = None
    prefecture: Optional[str] = None
    city: Optional[str] = None
    address_line: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return check_email(v)

    @field_validator(*SHIPPING_FIELDS, mode='before')
    @classmethod
    def empty_to_none(cls, v):
        return v or None

    def missing_shipping_fields(self) -> List[str]:
        return [field for field in SHIPPING_FIELDS if not getattr(self, field)]

    def set_timestamp(self, mode: Literal['update', 'create']):
        now = datetime.now(timezone.utc)
        if mode == 'create':
            self.created_at = now
        self.updated_at = now

    def to_row(self) -> List[Any]:
        return [
            self.backer_id,
            self.name,
            self.email,
            self.phone_number or '',
            self.postal_code or '',
            self.prefecture or '',
            self.city or '',
            self.address_line or '',
            self.created_at.isoformat() if self.created_at else '',
            self.updated_at.isoformat() if self.updated_at else '',
        ]


class Backing(BaseModel):
    """支援ヘッダー (backings シート A:J)"""
    backing_id: Optional[str] = None
    backer_id: Optional[str] = None
    backing_date: Optional[datetime] = None
    total_amount: int = Field(..., gt=0)
    payment_method: PaymentMethod
    payment_status: PaymentStatus = 'pending'
    order_status: OrderStatus = 'pending'
    transaction_id: Optional[str] = None
    created_at: Optional[datetime] = None
    notes: Optional[str] = None

    def set_timestamp(self):
        now = datetime.now(timezone.utc)
        self.backing_date = now
        self.created_at = now

    def to_row(self) -> List[Any]:
        backing_date = self.backing_date.astimezone(JST).strftime('%Y/%m/%d %H:%M:%S') if self.backing_date else ''
        return [
            self.backing_id,
            self.backer_id,
            backing_date,
            self.total_amount,
            self.payment_method,
            self.payment_status,
            self.order_status,
            self.transaction_id or '',
            self.created_at.isoformat() if self.created_at else '',
            self.notes or '',
        ]


class BackingItemRow(BaseModel):
    """支援明細 (backing_items シート A:G)"""
    backing_item_id: str
    backing_id: str
    reward_id: str
    quantity: int
    unit_price: int
    notes: Optional[str] = None

    @computed_field
    @property
    def subtotal(self) -> int:
        return self.quantity * self.unit_price

    @classmethod
    def from_backing_item(cls, backing_item_id: str, backing_id: str, item: BackingItem) -> "BackingItemRow":
        return cls(backing_item_id=backing_item_id, backing_id=backing_id,
                   reward_id=item.reward_id, quantity=item.quantity, unit_price=item.unit_price)

    def to_row(self) -> List[Any]:
        return [
            self.backing_item_id,
            self.backing_id,
            self.reward_id,
            self.quantity,
            self.unit_price,
            self.subtotal,
            self.notes or '',
        ]


class CommitResult(BaseModel):
    backer_id: str
    backing_id: str
    backing_item_ids: List[str] = []


class CheckoutBacking(BaseModel):
    total_amount: int = Field(..., gt=0)
    payment_method: PaymentMethod
    # 受け取るが使わない (状態は決済方法からサーバーが決める)
    payment_status: Optional[PaymentStatus] = None
    order_status: Optional[OrderStatus] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None


class CheckoutRequest(BaseModel):
    backer: Backer
    backing: CheckoutBacking
    items: List[BackingItem] = Field(..., min_length=1)


class CheckoutResultData(BaseModel):
    backing_id: str
    backer_id: str
    total_amount: int
    payment_method: PaymentMethod
    message: str = "Order created successfully."


class CheckoutResponse(BaseModel):
    success: bool = True
    data: CheckoutResultData


class PayPalConfirmRequest(BaseModel):
    orderId: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    phone_number: Optional[str] = None
    postal_code: Optional[str] = None
    prefecture: Optional[str] = None
    city: Optional[str] = None
    address_line: Optional[str] = None
    selectedRewards: List[BackingItem] = Field(..., min_length=1)
    totalAmount: Decimal = Field(..., gt=0)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return check_email(v)

    def to_backer(self) -> Backer:
        return Backer(**self.model_dump(include={'name', 'email', *SHIPPING_FIELDS}))


class PayPalConfirmResponse(BaseModel):
    success: bool = True
    backing_id: str
    backer_id: str
    message: str = "Payment confirmed and order created"


class BankInfo(BaseModel):
    bankName: str
    branchName: str
    accountType: str
    accountNumber: str
    accountHolder: str


class BackingContext(BaseModel):
    """コミット済みの注文 (確認メール用)"""
    backer: Backer
    backing: Backing
    items: List[BackingItem]
