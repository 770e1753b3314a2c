import os
import time
import pytest
from models.jpyc import JPYCExecuteRequest, SignatureComponents
from services.jpyc import build_permit_typed_data, generate_permit_signature

# テスト専用の使い捨て鍵
OWNER_KEY = "0x" + "00" * 31 + "01"
OWNER_ADDRESS = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"
RELAY_KEY = "0x" + "00" * 31 + "02"
RELAY_ADDRESS = "0x2B5AD5c4795c026514f8317c7a215E218DcCD6cF"
RECEIVER_ADDRESS = "0x6813Eb9362372EEF6200f3b1dbC3f819671cBA69"
TOKEN_ADDRESS = "0x431d5dff03120afa4bdf332c61a6e1766ef37bdb"

TEST_ENV = {
    "CROWDFUNDING_SHEET_ID": "test-public-sheet",
    "CROWDFUNDING_CUSTOMER_SHEET_ID": "test-customer-sheet",
    "GOOGLE_SERVICE_ACCOUNT_EMAIL": "crowdfunding@test.iam.gserviceaccount.com",
    "GOOGLE_PRIVATE_KEY": "dummy",
    "PAYPAL_ENV": "sandbox",
    "PAYPAL_CLIENT_ID_SANDBOX": "sandbox-client-id",
    "PAYPAL_SECRET_SANDBOX": "sandbox-secret",
    "BANK_NAME": "テスト銀行",
    "BRANCH_NAME": "本店",
    "ACCOUNT_TYPE": "普通",
    "ACCOUNT_NUMBER": "1234567",
    "ACCOUNT_HOLDER": "テスト タロウ",
    "TX_CONFIRMATION_BACKOFF_SECONDS": "0",
}


@pytest.fixture(scope="session", autouse=True)
def load_test_env():
    for key, value in TEST_ENV.items():
        os.environ[key] = value
    os.environ.pop("JPYC_EXPECTED_CHAIN_ID", None)
    os.environ.pop("EMAIL_CONNECTION_STRING", None)


@pytest.fixture
def signed_request():
    """OWNER_KEY で署名した /jpyc/execute のリクエストを作る"""
    def make(
        nonce: int = 3,
        deadline: int = None,
        value: int = 10000 * 10**18,
        chain_id: int = 137,
        token_address: str = TOKEN_ADDRESS,
        spender: str = RELAY_ADDRESS,
        private_key: str = OWNER_KEY,
    ) -> JPYCExecuteRequest:
        deadline = deadline if deadline is not None else int(time.time()) + 3600
        typed_data = build_permit_typed_data(
            owner=OWNER_ADDRESS,
            spender=spender,
            value=value,
            nonce=nonce,
            deadline=deadline,
            chain_id=chain_id,
            token_address=token_address,
        )
        signature = generate_permit_signature(typed_data, private_key)
        return JPYCExecuteRequest(
            owner=OWNER_ADDRESS,
            spender=spender,
            receiver=RECEIVER_ADDRESS,
            amount=str(value),
            deadline=deadline,
            nonce=str(nonce),
            signature=SignatureComponents(v=signature.v, r=signature.r, s=signature.s),
            orderId="ORDER-001",
        )

    return make
