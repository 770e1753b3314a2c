from managers.web3_manager import Web3Manager
from models.errors import ExternalServiceError
from utils.env import int_env, float_env
from utils.eip712 import hex_to_bytes32
from web3 import Web3
from web3.exceptions import TimeExhausted
from web3.types import TxReceipt
from typing import Any
import logging
import time

logger = logging.getLogger(__name__)


def get_relay_address() -> str:
    return Web3Manager().relay_address


def get_token_address() -> str:
    return Web3Manager().token_address


def get_chain_id() -> int:
    return int(Web3Manager().w3.eth.chain_id)


def get_gas_balance() -> int:
    """リレーウォレットのネイティブトークン (POL/MATIC) 残高 (wei)"""
    manager = Web3Manager()
    balance = manager.w3.eth.get_balance(manager.relay_address)
    logger.info("リレーウォレット残高: %s POL", Web3.from_wei(balance, 'ether'))
    return int(balance)


def get_nonce(owner: str) -> int:
    """JPYC コントラクトの nonces(owner)"""
    manager = Web3Manager()
    return int(manager.contract.functions.nonces(Web3.to_checksum_address(owner)).call())


def send_transaction(contract_function: Any, label: str) -> str:
    """リレーウォレットで署名して送信し、トランザクションハッシュを返す"""
    manager = Web3Manager()
    w3 = manager.w3
    account = manager.account

    tx = contract_function.build_transaction({
        "from": account.address,
        "nonce": w3.eth.get_transaction_count(account.address, "pending"),
        "chainId": w3.eth.chain_id,
    })
    signed = account.sign_transaction(tx)
    tx_hash = Web3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))
    logger.info("%s トランザクション送信: %s", label, tx_hash)
    return tx_hash


def wait_for_confirmation(tx_hash: str, label: str) -> TxReceipt:
    """1ブロックの確認を待つ

    ブロック取り込みの遅延はエラーではないため、タイムアウト時は間隔を空けて数回まで待ち直す。
    """
    w3 = Web3Manager().w3
    retries = max(1, int_env("TX_CONFIRMATION_RETRIES", 3))
    timeout = float_env("TX_CONFIRMATION_TIMEOUT_SECONDS", 120)
    backoff = float_env("TX_CONFIRMATION_BACKOFF_SECONDS", 2)

    for attempt in range(1, retries + 1):
        try:
            receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
            break
        except TimeExhausted:
            logger.warning("%s の確認待ちがタイムアウトしました (%d/%d): %s", label, attempt, retries, tx_hash)
            if attempt == retries:
                raise ExternalServiceError(
                    f"{label} トランザクションの確認がタイムアウトしました",
                    step=label,
                    debug={"txHash": tx_hash, "attempts": retries},
                )
            time.sleep(backoff * 2 ** (attempt - 1))

    if receipt["status"] != 1:
        raise ValueError(f"{label} transaction reverted: {tx_hash}")

    logger.info("%s 確認完了: %s (block %s)", label, tx_hash, receipt["blockNumber"])
    return receipt


def execute_permit(owner: str, spender: str, value: int, deadline: int, v: int, r: str, s: str) -> str:
    manager = Web3Manager()
    permit = manager.contract.functions.permit(
        Web3.to_checksum_address(owner),
        Web3.to_checksum_address(spender),
        value,
        deadline,
        v,
        hex_to_bytes32(r),
        hex_to_bytes32(s),
    )
    tx_hash = send_transaction(permit, "permit")
    receipt = wait_for_confirmation(tx_hash, "permit")
    return Web3.to_hex(receipt["transactionHash"])


def execute_transfer_from(owner: str, receiver: str, value: int) -> str:
    manager = Web3Manager()
    transfer = manager.contract.functions.transferFrom(
        Web3.to_checksum_address(owner),
        Web3.to_checksum_address(receiver),
        value,
    )
    tx_hash = send_transaction(transfer, "transferFrom")
    receipt = wait_for_confirmation(tx_hash, "transferFrom")
    return Web3.to_hex(receipt["transactionHash"])
