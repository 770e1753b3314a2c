import pytest
from eth_account.messages import encode_typed_data
from web3 import Web3
from models.jpyc import PermitDomain, PermitMessage
from utils.eip712 import (
    type_hash,
    hash_domain,
    hash_permit,
    permit_digest,
    private_key_to_address,
    recover_address,
    sign_typed_data_hash,
    split_signature,
    join_signature,
    same_address,
    SECP256K1_N,
)
from tests.conftest import OWNER_KEY, OWNER_ADDRESS, RELAY_ADDRESS, RELAY_KEY, TOKEN_ADDRESS

DOMAIN = PermitDomain(chainId=137, verifyingContract=TOKEN_ADDRESS)
MESSAGE = PermitMessage(owner=OWNER_ADDRESS, spender=RELAY_ADDRESS, value=10**22, nonce=3, deadline=1893456000)


def test_type_hashes():
    assert type_hash("Permit").hex() == "6e71edae12b1b97f4d1f60370fef10105fa2faae0126114a169c64845d6126c9"
    assert type_hash("EIP712Domain").hex() == "8b73c3c69bb8fe3d512ecc4cf759cc79239f7b179b0ffacaa9a75d522b39400f"


def test_private_key_to_address():
    assert private_key_to_address(OWNER_KEY) == OWNER_ADDRESS
    assert private_key_to_address(RELAY_KEY) == RELAY_ADDRESS


def test_hashes_match_eth_account():
    full_message = {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "Permit": [
                {"name": "owner", "type": "address"},
                {"name": "spender", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "nonce", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
            ],
        },
        "primaryType": "Permit",
        "domain": {
            "name": "JPY Coin",
            "version": "1",
            "chainId": 137,
            "verifyingContract": Web3.to_checksum_address(TOKEN_ADDRESS),
        },
        "message": MESSAGE.model_dump(),
    }
    signable = encode_typed_data(full_message=full_message)
    assert signable.header == hash_domain(DOMAIN)
    assert signable.body == hash_permit(MESSAGE)


def test_sign_and_recover():
    digest = permit_digest(DOMAIN, MESSAGE)
    v, r, s = sign_typed_data_hash(digest, OWNER_KEY)

    assert v in (27, 28)
    assert recover_address(digest, v, r, s) == OWNER_ADDRESS
    # v は 0/1 でも受け付ける
    assert recover_address(digest, v - 27, r, s) == OWNER_ADDRESS


def test_recover_with_other_domain_gives_other_address():
    digest = permit_digest(DOMAIN, MESSAGE)
    v, r, s = sign_typed_data_hash(digest, OWNER_KEY)

    other_chain = permit_digest(PermitDomain(chainId=80002, verifyingContract=TOKEN_ADDRESS), MESSAGE)
    assert not same_address(recover_address(other_chain, v, r, s), OWNER_ADDRESS)


def test_recover_rejects_high_s():
    digest = permit_digest(DOMAIN, MESSAGE)
    v, r, s = sign_typed_data_hash(digest, OWNER_KEY)
    high_s = "0x" + (SECP256K1_N - int(s, 16)).to_bytes(32, "big").hex()

    with pytest.raises(ValueError):
        recover_address(digest, v, r, high_s)


def test_split_and_join_signature():
    digest = permit_digest(DOMAIN, MESSAGE)
    v, r, s = sign_typed_data_hash(digest, OWNER_KEY)
    signature = join_signature(v, r, s)

    assert len(signature) == 132
    assert split_signature(signature) == (v, r, s)


def test_split_signature_rejects_bad_length():
    with pytest.raises(ValueError):
        split_signature("0x1234")


def test_same_address_is_case_insensitive():
    assert same_address(OWNER_ADDRESS, OWNER_ADDRESS.lower())
    assert not same_address(OWNER_ADDRESS, RELAY_ADDRESS)
