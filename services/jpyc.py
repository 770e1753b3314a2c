from typing import Callable, Optional, Tuple, Union
from web3 import Web3
from models.errors import (
    CheckoutError,
    CheckoutValidationError,
    DeadlineExpiredError,
    ExternalServiceError,
    InsufficientGasError,
    NonceMismatchError,
    PermitFailedError,
    SignatureInvalidError,
    SpenderMismatchError,
    TransferFailedError,
    WrongChainError,
)
from models.jpyc import (
    EXPECTED_CHAIN_ID,
    PERMIT_VALIDITY_SECONDS,
    JPYCCommitted,
    JPYCExecuteRequest,
    JPYCFailed,
    JPYCIdle,
    JPYCPaymentState,
    JPYCPermitSignature,
    JPYCSignatureGenerated,
    JPYCTransactionExecuted,
    PermitDomain,
    PermitMessage,
    PermitTypedData,
    SettlementResult,
    SignatureComponents,
)
from models.backing import CommitResult
from repository import jpyc as jpyc_repo
from utils.eip712 import permit_digest, recover_address, same_address, sign_typed_data_hash, join_signature, split_signature
from utils.env import int_env
import logging
import requests
import time

logger = logging.getLogger(__name__)

# revert 理由に含まれる語句 → ユーザー向けメッセージ
PERMIT_ERROR_MESSAGES = [
    ("nonce", "Nonce が無効か、既に使用されています"),
    ("signature", "署名が無効です"),
    ("deadline", "署名の有効期限が切れています"),
]


def expected_chain_id() -> int:
    return int_env("JPYC_EXPECTED_CHAIN_ID", EXPECTED_CHAIN_ID)


def build_permit_typed_data(
    owner: str,
    spender: str,
    value: int,
    nonce: int,
    deadline: int,
    chain_id: int,
    token_address: str,
) -> PermitTypedData:
    """署名側とリレー側で共通の EIP-712 Permit データを組み立てる"""
    return PermitTypedData(
        domain=PermitDomain(chainId=chain_id, verifyingContract=token_address),
        message=PermitMessage(owner=owner, spender=spender, value=value, nonce=nonce, deadline=deadline),
    )


def typed_data_digest(typed_data: PermitTypedData) -> bytes:
    return permit_digest(typed_data.domain, typed_data.message)


def create_permit_typed_data(owner: str, value: int, now: Optional[int] = None) -> PermitTypedData:
    """ウォレットに署名させる Permit データを、チェーン上の nonce を読んで作る"""
    if not Web3.is_address(owner):
        raise CheckoutValidationError("owner アドレスの形式が不正です", debug={"owner": owner})
    if value <= 0:
        raise CheckoutValidationError("Amount must be a positive integer string")

    now = now if now is not None else int(time.time())
    return build_permit_typed_data(
        owner=owner,
        spender=jpyc_repo.get_relay_address(),
        value=value,
        nonce=jpyc_repo.get_nonce(owner),
        deadline=now + PERMIT_VALIDITY_SECONDS,
        chain_id=jpyc_repo.get_chain_id(),
        token_address=jpyc_repo.get_token_address(),
    )


def generate_permit_signature(typed_data: PermitTypedData, private_key: Union[str, bytes]) -> JPYCPermitSignature:
    """ローカル鍵で Permit に署名する (スクリプト・テスト用のクライアント側署名)"""
    v, r, s = sign_typed_data_hash(typed_data_digest(typed_data), private_key)
    message = typed_data.message
    return JPYCPermitSignature(
        v=v,
        r=r,
        s=s,
        nonce=str(message.nonce),
        deadline=message.deadline,
        owner=message.owner,
        spender=message.spender,
        value=str(message.value),
        signature=join_signature(v, r, s),
    )


def validate_execute_request(request: JPYCExecuteRequest) -> Tuple[int, int, int]:
    """必須項目と数値形式を検証し (value, nonce, deadline) を返す"""
    present = request.present_fields()
    if not all(present.values()):
        raise CheckoutValidationError("必須フィールドが不足しています", step="validation", debug=present)

    if not request.signature.is_complete():
        raise CheckoutValidationError(
            "Signature の v, r, s が正しくありません",
            step="signature_validation",
            debug={"signature": request.signature.model_dump()},
        )

    for field in ('owner', 'spender', 'receiver'):
        if not Web3.is_address(getattr(request, field)):
            raise CheckoutValidationError(f"{field} アドレスの形式が不正です", step="validation", debug={field: getattr(request, field)})

    try:
        value = int(request.amount)
        nonce = int(request.nonce)
    except ValueError:
        raise CheckoutValidationError("amount と nonce は整数の文字列で指定してください", step="validation")
    if value <= 0 or nonce < 0:
        raise CheckoutValidationError("amount は正の整数で指定してください", step="validation")

    return value, nonce, int(request.deadline)


def check_deadline(deadline: int, now: Optional[int] = None):
    current_timestamp = now if now is not None else int(time.time())
    if deadline < current_timestamp:
        logger.warning("署名の有効期限切れ: deadline=%s now=%s", deadline, current_timestamp)
        raise DeadlineExpiredError(
            "署名の有効期限が切れています",
            debug={"deadline": deadline, "currentTimestamp": current_timestamp},
        )


def verify_permit_signature(
    request: JPYCExecuteRequest,
    value: int,
    nonce: int,
    deadline: int,
    chain_id: int,
    token_address: str,
) -> str:
    """サーバー側のチェーンIDとコントラクトアドレスで digest を再計算し、署名者が owner か検証する"""
    typed_data = build_permit_typed_data(
        owner=request.owner,
        spender=request.spender,
        value=value,
        nonce=nonce,
        deadline=deadline,
        chain_id=chain_id,
        token_address=token_address,
    )
    digest = typed_data_digest(typed_data)
    logger.info("Digest: 0x%s", digest.hex())

    signature = request.signature
    try:
        recovered = recover_address(digest, signature.v, signature.r, signature.s)
    except ValueError as e:
        raise SignatureInvalidError(
            "EIP-712 署名の検証に失敗しました",
            debug={"error": f"Signature verification failed: {e}"},
        ) from e

    logger.info("Recovered: %s / owner: %s", recovered, request.owner)
    if not same_address(recovered, request.owner):
        raise SignatureInvalidError(
            "EIP-712 署名の検証に失敗しました",
            debug={"error": "Signature does not match owner", "recovered": recovered},
        )
    return recovered


def permit_error_message(error: Exception) -> str:
    text = f"{error} {getattr(error, 'reason', '') or ''}".lower()
    for keyword, message in PERMIT_ERROR_MESSAGES:
        if keyword in text:
            return message
    return "Permit トランザクションの実行に失敗しました"


def error_debug(error: Exception) -> dict:
    return {
        "errorMessage": str(error),
        "errorReason": getattr(error, "reason", None),
        "errorCode": getattr(error, "code", None),
    }


def execute_settlement(request: JPYCExecuteRequest, now: Optional[int] = None) -> SettlementResult:
    """permit 署名を検証し、permit → transferFrom をリレーウォレットで実行する

    検証は記載の順に行い、最初の違反で失敗する。チェーンへの書き込みはすべての検証を通過した後のみ。
    """
    value, nonce, deadline = validate_execute_request(request)
    logger.info(
        "JPYC決済リレー: owner=%s receiver=%s amount=%s nonce=%s deadline=%s order=%s",
        request.owner, request.receiver, value, nonce, deadline, request.orderId,
    )

    check_deadline(deadline, now)

    relay_address = jpyc_repo.get_relay_address()
    if not same_address(request.spender, relay_address):
        logger.warning("Spender不一致: expected=%s received=%s", relay_address, request.spender)
        raise SpenderMismatchError(
            "Spender アドレスが一致しません",
            debug={"expected": relay_address, "received": request.spender},
        )

    try:
        gas_balance = jpyc_repo.get_gas_balance()
        chain_id = jpyc_repo.get_chain_id()
    except CheckoutError:
        raise
    except Exception as e:
        logger.error("RPCノードへの問い合わせに失敗しました", exc_info=True)
        raise ExternalServiceError("ブロックチェーンへの接続に失敗しました", step="rpc", debug={"error": str(e)}) from e

    if gas_balance == 0:
        raise InsufficientGasError(
            "バックエンドウォレットのMATIC残高がありません",
            debug={"balance": str(gas_balance)},
        )

    if chain_id != expected_chain_id():
        raise WrongChainError(
            "EIP-712 署名の検証に失敗しました",
            debug={"error": f"Wrong chain. Expected {expected_chain_id()}, got {chain_id}"},
        )

    verify_permit_signature(request, value, nonce, deadline, chain_id, jpyc_repo.get_token_address())

    try:
        contract_nonce = jpyc_repo.get_nonce(request.owner)
    except Exception as e:
        logger.error("Nonceの取得に失敗しました", exc_info=True)
        raise ExternalServiceError("Nonce の確認に失敗しました", step="nonce_check", debug={"error": str(e)}) from e

    if contract_nonce != nonce:
        logger.warning("Nonce不一致: contract=%s signature=%s", contract_nonce, nonce)
        raise NonceMismatchError(
            f"Nonce が一致しません。コントラクトは Nonce {contract_nonce} を期待していますが、署名は Nonce {nonce} で作成されました",
            debug={"expected": str(contract_nonce), "received": str(nonce)},
        )

    signature = request.signature
    try:
        permit_tx_hash = jpyc_repo.execute_permit(
            request.owner, request.spender, value, deadline, signature.v, signature.r, signature.s
        )
    except Exception as e:
        logger.error("permitの実行に失敗しました", exc_info=True)
        raise PermitFailedError(permit_error_message(e), debug=error_debug(e)) from e

    try:
        transfer_tx_hash = jpyc_repo.execute_transfer_from(request.owner, request.receiver, value)
    except Exception as e:
        # permit は確定済みのため allowance だけが残る
        logger.error("transferFromの実行に失敗しました (permit=%s)", permit_tx_hash, exc_info=True)
        raise TransferFailedError(
            "TransferFrom トランザクションの実行に失敗しました",
            debug={**error_debug(e), "permitTxHash": permit_tx_hash},
        ) from e

    logger.info("JPYC決済完了: permit=%s transferFrom=%s", permit_tx_hash, transfer_tx_hash)
    return SettlementResult(permit_tx_hash=permit_tx_hash, transfer_tx_hash=transfer_tx_hash)


def local_signer(private_key: Union[str, bytes]) -> Callable[[PermitTypedData], str]:
    """signTypedData 相当 (65バイト署名の16進文字列を返す)"""
    def sign(typed_data: PermitTypedData) -> str:
        signature = generate_permit_signature(typed_data, private_key)
        return signature.signature

    return sign


def http_relay(base_url: str, timeout: float = 180) -> Callable[[JPYCExecuteRequest], SettlementResult]:
    """/jpyc/execute を呼び出すリレー"""
    def relay(request: JPYCExecuteRequest) -> SettlementResult:
        response = requests.post(
            f"{base_url.rstrip('/')}/jpyc/execute",
            json=request.model_dump(),
            timeout=timeout,
        )
        data = response.json()
        if not response.ok or not data.get("success"):
            debug = data.get("debug") or {}
            raise ExternalServiceError(data.get("error", "リレーに失敗しました"), step=debug.get("step"), debug=debug)
        return SettlementResult(permit_tx_hash=data["permitTxHash"], transfer_tx_hash=data["transferTxHash"])

    return relay


class JPYCPaymentFlow:
    """1回の JPYC 決済の状態

    状態は sign / execute / commit / fail の遷移でのみ変わる。
    """

    def __init__(self):
        self._state: JPYCPaymentState = JPYCIdle()

    @property
    def state(self) -> JPYCPaymentState:
        return self._state

    def _require(self, expected: type):
        if not isinstance(self._state, expected):
            raise RuntimeError(f"{self._state.state} からは遷移できません")

    def fail(self, error: Union[str, Exception]) -> JPYCFailed:
        if isinstance(self._state, (JPYCCommitted, JPYCFailed)):
            raise RuntimeError(f"{self._state.state} からは遷移できません")
        message = error.message if isinstance(error, CheckoutError) else str(error)
        permit_tx_hash = error.debug.get("permitTxHash") if isinstance(error, CheckoutError) else None
        self._state = JPYCFailed(failed_from=self._state.state, error=message, permit_tx_hash=permit_tx_hash)
        return self._state

    def sign(self, typed_data: PermitTypedData, signer: Callable[[PermitTypedData], str]) -> JPYCSignatureGenerated:
        """Idle → SignatureGenerated (バックエンドとの通信なし)"""
        self._require(JPYCIdle)
        try:
            v, r, s = split_signature(signer(typed_data))
        except Exception as e:
            self.fail(e)
            raise

        message = typed_data.message
        self._state = JPYCSignatureGenerated(signature=JPYCPermitSignature(
            v=v,
            r=r,
            s=s,
            nonce=str(message.nonce),
            deadline=message.deadline,
            owner=message.owner,
            spender=message.spender,
            value=str(message.value),
            signature=join_signature(v, r, s),
        ))
        return self._state

    def to_execute_request(self, receiver: str, order_id: Optional[str] = None) -> JPYCExecuteRequest:
        self._require(JPYCSignatureGenerated)
        signature = self._state.signature
        return JPYCExecuteRequest(
            owner=signature.owner,
            spender=signature.spender,
            receiver=receiver,
            amount=signature.value,
            deadline=signature.deadline,
            nonce=signature.nonce,
            signature=SignatureComponents(v=signature.v, r=signature.r, s=signature.s),
            orderId=order_id,
        )

    def execute(
        self,
        relay: Callable[[JPYCExecuteRequest], SettlementResult],
        receiver: str,
        order_id: Optional[str] = None,
    ) -> JPYCTransactionExecuted:
        """SignatureGenerated → TransactionExecuted (permit と transferFrom の確定まで)"""
        request = self.to_execute_request(receiver, order_id)
        try:
            result = relay(request)
        except Exception as e:
            self.fail(e)
            raise

        self._state = JPYCTransactionExecuted(
            signature=self._state.signature,
            permit_tx_hash=result.permit_tx_hash,
            transfer_tx_hash=result.transfer_tx_hash,
        )
        return self._state

    def commit(self, commit_order: Callable[[str], CommitResult]) -> JPYCCommitted:
        """TransactionExecuted → Committed (transferFrom のハッシュで注文を保存)"""
        self._require(JPYCTransactionExecuted)
        transfer_tx_hash = self._state.transfer_tx_hash
        try:
            result = commit_order(transfer_tx_hash)
        except Exception as e:
            self.fail(e)
            raise

        self._state = JPYCCommitted(
            transfer_tx_hash=transfer_tx_hash,
            backing_id=result.backing_id,
            backer_id=result.backer_id,
        )
        return self._state
