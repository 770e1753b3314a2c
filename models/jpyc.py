from pydantic import BaseModel, field_validator
from typing import List, Optional, Dict, Any, Literal, Union

JPYC_DECIMALS = 18
PERMIT_VALIDITY_SECONDS = 3600
EXPECTED_CHAIN_ID = 137

EIP712_DOMAIN_NAME = "JPY Coin"
EIP712_DOMAIN_VERSION = "1"

EIP712_TYPES: Dict[str, List[Dict[str, str]]] = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Permit": [
        {"name": "owner", "type": "address"},
        {"name": "spender", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ],
}


class PermitDomain(BaseModel):
    name: str = EIP712_DOMAIN_NAME
    version: str = EIP712_DOMAIN_VERSION
    chainId: int
    verifyingContract: str


class PermitMessage(BaseModel):
    owner: str
    spender: str
    value: int
    nonce: int
    deadline: int


class PermitTypedData(BaseModel):
    """ウォレットの eth_signTypedData_v4 にそのまま渡せる形式"""
    types: Dict[str, List[Dict[str, str]]] = EIP712_TYPES
    primaryType: str = "Permit"
    domain: PermitDomain
    message: PermitMessage

    def to_wallet_payload(self) -> Dict[str, Any]:
        # uint256 は JS 側で精度を失わないよう文字列にする
        payload = self.model_dump()
        payload["message"] = {k: str(v) if isinstance(v, int) else v for k, v in payload["message"].items()}
        return payload


class SignatureComponents(BaseModel):
    v: Optional[int] = None
    r: Optional[str] = None
    s: Optional[str] = None

    def is_complete(self) -> bool:
        return self.v is not None and bool(self.r) and bool(self.s)


class JPYCPermitSignature(BaseModel):
    """クライアントが保持する permit 署名 (リレー送信まで)"""
    v: int
    r: str
    s: str
    nonce: str
    deadline: int
    owner: str
    spender: str
    value: str
    signature: Optional[str] = None


class JPYCExecuteRequest(BaseModel):
    owner: Optional[str] = None
    spender: Optional[str] = None
    receiver: Optional[str] = None
    amount: Optional[str] = None
    deadline: Optional[int] = None
    nonce: Optional[str] = None
    signature: Optional[SignatureComponents] = None
    orderId: Optional[str] = None

    @field_validator('amount', 'nonce', mode='before')
    @classmethod
    def int_to_str(cls, v):
        # uint256 は数値でも文字列でも受け付ける
        if isinstance(v, bool):
            raise ValueError("must be an integer string")
        if isinstance(v, int):
            return str(v)
        return v

    def present_fields(self) -> Dict[str, bool]:
        fields = ['owner', 'spender', 'receiver', 'amount', 'deadline', 'nonce', 'signature']
        return {field: getattr(self, field) not in (None, '', 0) for field in fields}


class JPYCExecuteResponse(BaseModel):
    success: bool = True
    message: str = "トランザクション実行成功"
    permitTxHash: str
    transferTxHash: str
    transactionHash: str
    debug: Dict[str, Any] = {}


class SettlementResult(BaseModel):
    permit_tx_hash: str
    transfer_tx_hash: str


# JPYC 決済の状態遷移: Idle → SignatureGenerated → TransactionExecuted → (Committed | Failed)
class JPYCIdle(BaseModel):
    state: Literal['idle'] = 'idle'


class JPYCSignatureGenerated(BaseModel):
    state: Literal['signature_generated'] = 'signature_generated'
    signature: JPYCPermitSignature


class JPYCTransactionExecuted(BaseModel):
    state: Literal['transaction_executed'] = 'transaction_executed'
    signature: JPYCPermitSignature
    permit_tx_hash: str
    transfer_tx_hash: str


class JPYCCommitted(BaseModel):
    state: Literal['committed'] = 'committed'
    transfer_tx_hash: str
    backing_id: str
    backer_id: str


class JPYCFailed(BaseModel):
    state: Literal['failed'] = 'failed'
    failed_from: str
    error: str
    permit_tx_hash: Optional[str] = None


JPYCPaymentState = Union[JPYCIdle, JPYCSignatureGenerated, JPYCTransactionExecuted, JPYCCommitted, JPYCFailed]
