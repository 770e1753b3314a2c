import pytest
from pydantic import ValidationError
from models.backing import Backer, BackingItem, Cart, RewardData
from models.jpyc import JPYCExecuteRequest

MAIL = RewardData(reward_id="R001", title="お礼のメール", unit_price=3000)
SHIRT = RewardData(reward_id="R002", title="Tシャツ", unit_price=5000, requires_shipping=True)


def test_cart_add_and_total():
    cart = Cart()
    cart.add_reward(MAIL)
    cart.add_reward(MAIL, quantity=2)
    cart.add_reward(SHIRT)

    assert [(r.reward_id, r.quantity) for r in cart.selected_rewards] == [("R001", 3), ("R002", 1)]
    assert cart.total_amount == 14000
    assert cart.has_shipping_requirement is True


def test_cart_quantity_zero_removes():
    cart = Cart()
    cart.add_reward(MAIL)
    cart.add_reward(SHIRT)

    cart.update_quantity("R002", 0)

    assert [r.reward_id for r in cart.selected_rewards] == ["R001"]
    assert cart.has_shipping_requirement is False


def test_cart_update_and_clear():
    cart = Cart()
    cart.add_reward(MAIL)
    cart.update_quantity("R001", 4)
    assert cart.to_backing_items() == [BackingItem(reward_id="R001", unit_price=3000, quantity=4)]

    cart.clear()
    assert cart.total_amount == 0


def test_backing_item_quantity_must_be_positive():
    with pytest.raises(ValidationError):
        BackingItem(reward_id="R001", unit_price=3000, quantity=0)


def test_backer_email_format():
    with pytest.raises(ValidationError) as excinfo:
        Backer(name="山田 太郎", email="not-an-email")
    assert "Invalid email format" in str(excinfo.value)


def test_backer_missing_shipping_fields():
    backer = Backer(name="山田 太郎", email="taro@example.com", postal_code="", city="千代田区")
    assert backer.missing_shipping_fields() == ["phone_number", "postal_code", "prefecture", "address_line"]


def test_execute_request_accepts_numeric_amount():
    request = JPYCExecuteRequest(amount=10**22, nonce=0)
    assert request.amount == str(10**22)
    assert request.nonce == "0"
