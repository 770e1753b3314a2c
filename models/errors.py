from typing import Any, Dict, Optional


class CheckoutError(Exception):
    """チェックアウト処理の基底例外

    message はユーザーに表示してよい文言、debug は診断用の補足情報。
    """

    status_code: int = 500
    step: Optional[str] = None

    def __init__(self, message: str, step: Optional[str] = None, debug: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if step is not None:
            self.step = step
        self.debug: Dict[str, Any] = debug or {}

    def to_content(self, key: str = "error") -> Dict[str, Any]:
        content: Dict[str, Any] = {"success": False, key: self.message}
        if self.step or self.debug:
            content["debug"] = {"step": self.step, **self.debug}
        return content


class CheckoutValidationError(CheckoutError):
    status_code = 400
    step = "validation"


class AmountMismatchError(CheckoutError):
    status_code = 400
    step = "amount_check"


class SignatureInvalidError(CheckoutError):
    status_code = 400
    step = "eip712_verification"


class DeadlineExpiredError(CheckoutError):
    status_code = 400
    step = "deadline_check"


class SpenderMismatchError(CheckoutError):
    status_code = 400
    step = "spender_validation"


class WrongChainError(CheckoutError):
    status_code = 400
    step = "eip712_verification"


class NonceMismatchError(CheckoutError):
    status_code = 409
    step = "nonce_mismatch"


class InsufficientGasError(CheckoutError):
    status_code = 500
    step = "matic_balance_check"


class ExternalServiceError(CheckoutError):
    status_code = 500


class CredentialsMissingError(ExternalServiceError):
    step = "configuration"


class CaptureFailedError(ExternalServiceError):
    step = "capture"


class PermitFailedError(ExternalServiceError):
    step = "permit"


class TransferFailedError(ExternalServiceError):
    step = "transferFrom"


class PartialCommitError(ExternalServiceError):
    """backer / backing / backing_items の一部だけが書き込まれた状態"""

    step = "commit"
