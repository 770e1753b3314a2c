from decimal import Decimal
import pytest
from unittest.mock import patch
from models.backing import Backer, BackingItem, CheckoutRequest, CommitResult, PayPalConfirmRequest, RewardData
from models.errors import AmountMismatchError, CheckoutValidationError
from services import checkout as checkout_service
from services.paypal import CaptureResult

CATALOG = {
    "R001": RewardData(reward_id="R001", title="お礼のメール", unit_price=3000),
    "R002": RewardData(reward_id="R002", title="Tシャツ", unit_price=5000, requires_shipping=True),
}

SHIPPING = {
    "phone_number": "090-0000-0000",
    "postal_code": "100-0001",
    "prefecture": "東京都",
    "city": "千代田区",
    "address_line": "千代田1-1",
}


def fake_commit(backer, backing, items):
    backer.backer_id = "B006"
    backing.backing_id = "BACK006"
    backing.backer_id = "B006"
    backing.set_timestamp()
    return CommitResult(backer_id="B006", backing_id="BACK006")


@pytest.fixture()
def store():
    with patch("repository.reward.get_reward_map", return_value=CATALOG), \
            patch("repository.backing.create_order", side_effect=fake_commit) as create_order:
        yield create_order


def checkout_request(method="bank", total_amount=6300, items=None, transaction_id=None,
                     payment_status="pending", order_status="pending", **backer):
    return CheckoutRequest(
        backer={"name": "山田 太郎", "email": "taro@example.com", **backer},
        backing={
            "total_amount": total_amount,
            "payment_method": method,
            "payment_status": payment_status,
            "order_status": order_status,
            "transaction_id": transaction_id,
        },
        items=items or [{"reward_id": "R001", "unit_price": 3000, "quantity": 2}],
    )


def test_bank_checkout(store):
    context = checkout_service.checkout(checkout_request())

    backer, backing, items = store.call_args.args
    assert backing.total_amount == 6300
    assert backing.payment_method == 'bank'
    assert backing.payment_status == 'pending'
    assert [item.subtotal for item in items] == [6000]
    assert context.backing.backing_id == "BACK006"
    assert context.backer.backer_id == "B006"


def test_bank_checkout_stores_client_total(store):
    checkout_service.checkout(checkout_request(total_amount=6000))
    _, backing, _ = store.call_args.args
    assert backing.total_amount == 6000


def test_bank_checkout_ignores_client_status(store):
    checkout_service.checkout(checkout_request(payment_status="completed", order_status="shipped"))
    _, backing, _ = store.call_args.args
    assert backing.payment_status == 'pending'
    assert backing.order_status == 'pending'


def test_paypal_rejected_on_checkout(store):
    request = checkout_request(method="paypal", payment_status="completed", order_status="received")

    with pytest.raises(CheckoutValidationError) as excinfo:
        checkout_service.checkout(request)

    assert excinfo.value.status_code == 400
    assert "/checkout/paypal-confirm" in excinfo.value.message
    store.assert_not_called()


def test_jpyc_checkout_requires_transaction_id(store):
    with pytest.raises(CheckoutValidationError):
        checkout_service.checkout(checkout_request(method="jpyc", total_amount=6000))
    store.assert_not_called()


def test_jpyc_checkout(store):
    checkout_service.checkout(checkout_request(method="jpyc", total_amount=6000, transaction_id="0xbb"))
    _, backing, _ = store.call_args.args
    assert backing.total_amount == 6000
    assert backing.transaction_id == "0xbb"
    assert backing.payment_status == 'completed'
    assert backing.order_status == 'received'


def test_jpyc_checkout_ignores_client_status(store):
    checkout_service.checkout(checkout_request(
        method="jpyc", total_amount=6000, transaction_id="0xbb",
        payment_status="failed", order_status="shipped",
    ))
    _, backing, _ = store.call_args.args
    assert (backing.payment_status, backing.order_status) == ('completed', 'received')


def test_unit_price_comes_from_catalog(store):
    checkout_service.checkout(checkout_request(items=[{"reward_id": "R001", "unit_price": 1, "quantity": 2}]))
    _, _, items = store.call_args.args
    assert items[0].unit_price == 3000


def test_duplicate_reward_lines_are_merged(store):
    checkout_service.checkout(checkout_request(items=[
        {"reward_id": "R001", "unit_price": 3000, "quantity": 1},
        {"reward_id": "R001", "unit_price": 3000, "quantity": 2},
    ]))
    _, _, items = store.call_args.args
    assert [(item.reward_id, item.quantity, item.subtotal) for item in items] == [("R001", 3, 9000)]


def test_unknown_reward(store):
    with pytest.raises(CheckoutValidationError) as excinfo:
        checkout_service.checkout(checkout_request(items=[{"reward_id": "R999", "unit_price": 1000, "quantity": 1}]))
    assert "R999" in excinfo.value.message
    store.assert_not_called()


def test_shipping_required_lists_missing_fields(store):
    request = checkout_request(
        total_amount=5250,
        items=[{"reward_id": "R002", "unit_price": 5000, "quantity": 1}],
        **{**SHIPPING, "postal_code": ""},
    )

    with pytest.raises(CheckoutValidationError) as excinfo:
        checkout_service.checkout(request)

    assert excinfo.value.message == "Shipping address is required. Missing fields: postal_code"
    assert excinfo.value.debug["missing_fields"] == ["postal_code"]
    store.assert_not_called()


def test_shipping_provided(store):
    request = checkout_request(
        total_amount=5250,
        items=[{"reward_id": "R002", "unit_price": 5000, "quantity": 1}],
        **SHIPPING,
    )
    checkout_service.checkout(request)
    backer, _, _ = store.call_args.args
    assert backer.postal_code == "100-0001"


def paypal_request(total="6300"):
    return PayPalConfirmRequest(
        orderId="PAYPAL-ORDER-1",
        name="山田 太郎",
        email="taro@example.com",
        selectedRewards=[{"reward_id": "R001", "unit_price": 3000, "quantity": 2}],
        totalAmount=Decimal(total),
    )


@patch("services.checkout.verify_and_capture")
def test_confirm_paypal(mock_capture, store):
    mock_capture.return_value = CaptureResult(captured_amount=Decimal("6300.00"), transaction_id="CAPTURE-1", status="COMPLETED")

    context = checkout_service.confirm_paypal(paypal_request())

    mock_capture.assert_called_once_with("PAYPAL-ORDER-1", 6300)
    _, backing, _ = store.call_args.args
    assert backing.payment_status == 'completed'
    assert backing.order_status == 'received'
    assert backing.transaction_id == "CAPTURE-1"
    assert backing.notes == "PayPal Payment - Order ID: PAYPAL-ORDER-1"
    assert context.backing.total_amount == 6300


@patch("services.checkout.verify_and_capture")
def test_confirm_paypal_ignores_client_total(mock_capture, store):
    mock_capture.return_value = CaptureResult(captured_amount=Decimal("6300"), transaction_id="CAPTURE-1", status="COMPLETED")
    checkout_service.confirm_paypal(paypal_request(total="1"))
    mock_capture.assert_called_once_with("PAYPAL-ORDER-1", 6300)


@patch("services.checkout.verify_and_capture")
def test_confirm_paypal_mismatch_does_not_commit(mock_capture, store):
    mock_capture.side_effect = AmountMismatchError("Payment amount mismatch")

    with pytest.raises(AmountMismatchError):
        checkout_service.confirm_paypal(paypal_request())

    store.assert_not_called()


def test_commit_jpyc_order(store):
    backer = Backer(name="山田 太郎", email="taro@example.com")
    items = [BackingItem(reward_id="R001", unit_price=3000, quantity=2)]

    context = checkout_service.commit_jpyc_order(backer, items, "0x" + "bb" * 32, order_id="ORDER-001")

    assert context.backing.total_amount == 6000
    assert context.backing.transaction_id == "0x" + "bb" * 32
    assert context.backing.payment_status == 'completed'
    assert context.backing.order_status == 'received'


def test_get_bank_info():
    info = checkout_service.get_bank_info()
    assert info.bankName == "テスト銀行"
    assert info.accountNumber == "1234567"
