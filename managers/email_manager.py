from typing import Optional
from azure.communication.email import EmailClient
from utils.env import require_env


class EmailManager:
    _instance: Optional['EmailManager'] = None
    client: Optional[EmailClient] = None

    def __new__(cls):
        if cls._instance is None:
            connection_string = require_env("EMAIL_CONNECTION_STRING")
            instance = super().__new__(cls)
            instance.client = EmailClient.from_connection_string(connection_string)
            cls._instance = instance
        return cls._instance
