from typing import Optional
from threading import Lock
from web3 import Web3
from web3.contract import Contract
from eth_account.signers.local import LocalAccount
from utils.env import require_env, float_env

# JPYC (ERC20 + EIP-2612 permit) のうち利用する関数のみ
JPYC_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "_from", "type": "address"},
            {"name": "_to", "type": "address"},
            {"name": "_value", "type": "uint256"},
        ],
        "name": "transferFrom",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            {"name": "_owner", "type": "address"},
            {"name": "_spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "deadline", "type": "uint256"},
            {"name": "v", "type": "uint8"},
            {"name": "r", "type": "bytes32"},
            {"name": "s", "type": "bytes32"},
        ],
        "name": "permit",
        "outputs": [],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "nonces",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "DOMAIN_SEPARATOR",
        "outputs": [{"name": "", "type": "bytes32"}],
        "type": "function",
    },
]


class Web3Manager:
    """Polygon RPC とリレーウォレット、JPYC コントラクトのシングルトン"""
    _instance: Optional['Web3Manager'] = None
    _lock = Lock()
    w3: Optional[Web3] = None
    account: Optional[LocalAccount] = None
    contract: Optional[Contract] = None

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    rpc_url = require_env("POLYGON_RPC_URL")
                    private_key = require_env("BACKEND_WALLET_PRIVATE_KEY")
                    token_address = require_env("JPYC_TOKEN_ADDRESS")

                    w3 = Web3(Web3.HTTPProvider(
                        rpc_url,
                        request_kwargs={"timeout": float_env("HTTP_TIMEOUT_SECONDS", 15)},
                    ))

                    instance = super().__new__(cls)
                    instance.w3 = w3
                    instance.account = w3.eth.account.from_key(private_key)
                    instance.contract = w3.eth.contract(
                        address=Web3.to_checksum_address(token_address),
                        abi=JPYC_ABI,
                    )
                    cls._instance = instance

        return cls._instance

    def __init__(self):
        pass

    @property
    def relay_address(self) -> str:
        return self.account.address

    @property
    def token_address(self) -> str:
        return self.contract.address
