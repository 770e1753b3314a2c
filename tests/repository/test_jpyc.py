import pytest
from unittest.mock import MagicMock, patch
from web3.exceptions import TimeExhausted
from models.errors import ExternalServiceError
from repository import jpyc as jpyc_repo
from tests.conftest import OWNER_ADDRESS, RELAY_ADDRESS, RECEIVER_ADDRESS

TX_HASH = "0x" + "cd" * 32
RECEIPT = {"status": 1, "blockNumber": 123, "transactionHash": bytes.fromhex("cd" * 32)}


@pytest.fixture()
def manager():
    mock = MagicMock()
    mock.relay_address = RELAY_ADDRESS
    mock.account.address = RELAY_ADDRESS
    mock.account.sign_transaction.return_value.raw_transaction = b"\x02signed"
    mock.w3.eth.chain_id = 137
    mock.w3.eth.get_transaction_count.return_value = 7
    mock.w3.eth.send_raw_transaction.return_value = bytes.fromhex("cd" * 32)
    mock.w3.eth.wait_for_transaction_receipt.return_value = RECEIPT
    with patch("repository.jpyc.Web3Manager", return_value=mock), patch("repository.jpyc.time.sleep") as sleep:
        mock.sleep = sleep
        yield mock


def test_get_nonce(manager):
    manager.contract.functions.nonces.return_value.call.return_value = 4
    assert jpyc_repo.get_nonce(OWNER_ADDRESS.lower()) == 4
    manager.contract.functions.nonces.assert_called_once_with(OWNER_ADDRESS)


def test_execute_permit(manager):
    tx_hash = jpyc_repo.execute_permit(OWNER_ADDRESS, RELAY_ADDRESS, 10**18, 1893456000, 27, "0x" + "11" * 32, "0x" + "22" * 32)

    assert tx_hash == TX_HASH
    args = manager.contract.functions.permit.call_args.args
    assert args[4] == 27
    assert args[5] == bytes.fromhex("11" * 32)
    transaction = manager.contract.functions.permit.return_value.build_transaction.call_args.args[0]
    assert transaction == {"from": RELAY_ADDRESS, "nonce": 7, "chainId": 137}
    manager.w3.eth.send_raw_transaction.assert_called_once_with(b"\x02signed")


def test_execute_transfer_from(manager):
    assert jpyc_repo.execute_transfer_from(OWNER_ADDRESS, RECEIVER_ADDRESS, 10**18) == TX_HASH
    manager.contract.functions.transferFrom.assert_called_once_with(OWNER_ADDRESS, RECEIVER_ADDRESS, 10**18)


def test_confirmation_wait_retries_on_timeout(manager):
    manager.w3.eth.wait_for_transaction_receipt.side_effect = [TimeExhausted("slow block"), RECEIPT]

    receipt = jpyc_repo.wait_for_confirmation(TX_HASH, "permit")

    assert receipt["blockNumber"] == 123
    assert manager.w3.eth.wait_for_transaction_receipt.call_count == 2
    manager.sleep.assert_called_once()


def test_confirmation_wait_gives_up(manager):
    manager.w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("slow block")

    with pytest.raises(ExternalServiceError) as excinfo:
        jpyc_repo.wait_for_confirmation(TX_HASH, "transferFrom")

    assert excinfo.value.debug["attempts"] == 3
    assert manager.w3.eth.wait_for_transaction_receipt.call_count == 3


def test_confirmation_wait_tries_at_least_once(manager, monkeypatch):
    monkeypatch.setenv("TX_CONFIRMATION_RETRIES", "0")
    manager.w3.eth.wait_for_transaction_receipt.return_value = RECEIPT

    receipt = jpyc_repo.wait_for_confirmation(TX_HASH, "permit")

    assert receipt["blockNumber"] == 123
    manager.w3.eth.wait_for_transaction_receipt.assert_called_once()


def test_confirmation_wait_zero_retries_still_reports_timeout(manager, monkeypatch):
    monkeypatch.setenv("TX_CONFIRMATION_RETRIES", "0")
    manager.w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("slow block")

    with pytest.raises(ExternalServiceError) as excinfo:
        jpyc_repo.wait_for_confirmation(TX_HASH, "permit")

    assert excinfo.value.debug["attempts"] == 1
    manager.sleep.assert_not_called()


def test_reverted_transaction(manager):
    manager.w3.eth.wait_for_transaction_receipt.return_value = {**RECEIPT, "status": 0}

    with pytest.raises(ValueError):
        jpyc_repo.wait_for_confirmation(TX_HASH, "permit")
