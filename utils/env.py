from typing import Optional
from models.errors import CredentialsMissingError
import os


def require_env(name: str) -> str:
    """必須の環境変数を取得する。未設定なら即座にエラーにする"""
    value = os.getenv(name)
    if not value:
        raise CredentialsMissingError(
            f"{name}環境変数が設定されていません",
            debug={"variable": name},
        )
    return value


def int_env(name: str, default: int) -> int:
    value: Optional[str] = os.getenv(name)
    return int(value) if value else default


def float_env(name: str, default: float) -> float:
    value: Optional[str] = os.getenv(name)
    return float(value) if value else default
