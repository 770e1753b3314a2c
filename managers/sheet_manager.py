from typing import Any, List, Optional
from threading import Lock
from google.oauth2 import service_account
from googleapiclient.discovery import build, Resource
from googleapiclient.errors import HttpError
from models.errors import ExternalServiceError
from utils.env import require_env
import logging

logger = logging.getLogger(__name__)

SCOPES = ['https://www.googleapis.com/auth/spreadsheets']


class SheetConnectionManager:
    """Google Sheets (行追記と範囲読み取りのみ) のシングルトンクライアント"""
    _instance: Optional['SheetConnectionManager'] = None
    _lock = Lock()
    client: Optional[Resource] = None

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    def get_client():
                        credentials = service_account.Credentials.from_service_account_info(
                            {
                                "type": "service_account",
                                "client_email": require_env("GOOGLE_SERVICE_ACCOUNT_EMAIL"),
                                "private_key": require_env("GOOGLE_PRIVATE_KEY").replace("\\n", "\n"),
                                "token_uri": "https://oauth2.googleapis.com/token",
                            },
                            scopes=SCOPES,
                        )
                        return build("sheets", "v4", credentials=credentials, cache_discovery=False)

                    instance = super().__new__(cls)
                    instance.client = get_client()
                    cls._instance = instance

        return cls._instance

    def __init__(self):
        pass

    def get_values(self, spreadsheet_id: str, range_name: str) -> List[List[Any]]:
        try:
            response = self.client.spreadsheets().values().get(
                spreadsheetId=spreadsheet_id,
                range=range_name,
            ).execute()
            return response.get("values", [])
        except HttpError as e:
            logger.error("シートの読み取りに失敗しました: %s", range_name, exc_info=True)
            raise ExternalServiceError(
                "スプレッドシートの読み取りに失敗しました",
                step="sheet_read",
                debug={"range": range_name, "status": e.resp.status},
            ) from e

    def append_values(self, spreadsheet_id: str, range_name: str, values: List[List[Any]]) -> dict:
        try:
            return self.client.spreadsheets().values().append(
                spreadsheetId=spreadsheet_id,
                range=range_name,
                valueInputOption="RAW",
                body={"values": values},
            ).execute()
        except HttpError as e:
            logger.error("シートへの追記に失敗しました: %s", range_name, exc_info=True)
            raise ExternalServiceError(
                "スプレッドシートへの書き込みに失敗しました",
                step="sheet_append",
                debug={"range": range_name, "status": e.resp.status},
            ) from e


def crowdfunding_sheet_id() -> str:
    return require_env("CROWDFUNDING_SHEET_ID")


def customer_sheet_id() -> str:
    return require_env("CROWDFUNDING_CUSTOMER_SHEET_ID")
