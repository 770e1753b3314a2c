from typing import Any, Dict, Literal, Optional, Tuple
import os
import time
import logging
import requests
from models.errors import CaptureFailedError, CredentialsMissingError, ExternalServiceError
from utils.env import float_env

logger = logging.getLogger(__name__)

PayPalEnvironment = Literal['live', 'sandbox']

PAYPAL_API_BASE: Dict[PayPalEnvironment, str] = {
    'live': "https://api-m.paypal.com",
    'sandbox': "https://api-m.sandbox.paypal.com",
}


class PayPalManager:
    """PayPal REST API (OAuth2 client credentials + Orders v2 capture)"""

    def __init__(self, environment: Optional[PayPalEnvironment] = None):
        self.environment: PayPalEnvironment = environment or os.getenv("PAYPAL_ENV", "sandbox")
        if self.environment not in PAYPAL_API_BASE:
            raise CredentialsMissingError(f"PAYPAL_ENVの値が不正です: {self.environment}")
        self.base_url = PAYPAL_API_BASE[self.environment]
        self.timeout = float_env("HTTP_TIMEOUT_SECONDS", 15)

    def _credentials(self) -> Tuple[str, str]:
        suffix = self.environment.upper()
        client_id = os.getenv(f"PAYPAL_CLIENT_ID_{suffix}")
        client_secret = os.getenv(f"PAYPAL_SECRET_{suffix}")
        if not client_id or not client_secret:
            raise CredentialsMissingError(
                "PayPal credentials not set for the current environment.",
                debug={"environment": self.environment},
            )
        return client_id, client_secret

    def get_access_token(self) -> str:
        client_id, client_secret = self._credentials()
        logger.info("PayPalアクセストークンを取得します (%s)", self.environment)
        try:
            response = requests.post(
                f"{self.base_url}/v1/oauth2/token",
                auth=(client_id, client_secret),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data={"grant_type": "client_credentials"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ExternalServiceError(
                "PayPalへの接続に失敗しました", step="paypal_token", debug={"error": str(e)}
            ) from e

        if not response.ok:
            logger.error("PayPalトークン取得に失敗しました: %s %s", response.status_code, response.text)
            raise ExternalServiceError(
                f"PayPal token request failed: {response.status_code}",
                step="paypal_token",
                debug={"status": response.status_code},
            )
        return response.json()["access_token"]

    def capture_order(self, order_id: str) -> Dict[str, Any]:
        """承認済みの PayPal Order をキャプチャ (決済確定) する"""
        access_token = self.get_access_token()
        logger.info("PayPal Orderをキャプチャします: %s", order_id)
        try:
            response = requests.post(
                f"{self.base_url}/v2/checkout/orders/{order_id}/capture",
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                    # 冪等キー
                    "PayPal-Request-Id": str(int(time.time() * 1000)),
                    "Prefer": "return=representation",
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ExternalServiceError(
                "PayPalへの接続に失敗しました", step="capture", debug={"error": str(e)}
            ) from e

        if not response.ok:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {"raw": response.text}
            logger.error("PayPalキャプチャに失敗しました: %s %s", response.status_code, error_data)
            raise CaptureFailedError(
                f"PayPal capture failed: {response.status_code}",
                debug={"status": response.status_code, "name": error_data.get("name")},
            )

        data = response.json()
        logger.info("PayPal Orderキャプチャ完了: %s (%s)", data.get("id"), data.get("status"))
        return data
