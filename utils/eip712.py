from typing import Dict, List, Tuple, Union
from coincurve import PrivateKey, PublicKey
from eth_utils import keccak, to_checksum_address, to_canonical_address
from models.jpyc import EIP712_TYPES, PermitDomain, PermitMessage

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def encode_type(primary_type: str, types: Dict[str, List[Dict[str, str]]] = EIP712_TYPES) -> bytes:
    """Permit(address owner,address spender,...) 形式の型文字列"""
    fields = ",".join(f"{f['type']} {f['name']}" for f in types[primary_type])
    return f"{primary_type}({fields})".encode()


def type_hash(primary_type: str) -> bytes:
    return keccak(encode_type(primary_type))


def encode_uint256(value: int) -> bytes:
    if value < 0 or value >= 2**256:
        raise ValueError(f"uint256の範囲外です: {value}")
    return value.to_bytes(32, byteorder="big")


def encode_address(address: str) -> bytes:
    try:
        canonical = to_canonical_address(str(address).lower())
    except (ValueError, TypeError):
        raise ValueError(f"アドレスの形式が不正です: {address}")
    return canonical.rjust(32, b"\x00")


def hash_domain(domain: PermitDomain) -> bytes:
    """DOMAIN_SEPARATOR"""
    return keccak(
        type_hash("EIP712Domain")
        + keccak(domain.name.encode())
        + keccak(domain.version.encode())
        + encode_uint256(domain.chainId)
        + encode_address(domain.verifyingContract)
    )


def hash_permit(message: PermitMessage) -> bytes:
    return keccak(
        type_hash("Permit")
        + encode_address(message.owner)
        + encode_address(message.spender)
        + encode_uint256(message.value)
        + encode_uint256(message.nonce)
        + encode_uint256(message.deadline)
    )


def permit_digest(domain: PermitDomain, message: PermitMessage) -> bytes:
    """\\x19\\x01 ‖ domainSeparator ‖ hashStruct(message)"""
    return keccak(b"\x19\x01" + hash_domain(domain) + hash_permit(message))


def hex_to_bytes32(value: str) -> bytes:
    data = bytes.fromhex(value[2:] if value.startswith("0x") else value)
    if len(data) != 32:
        raise ValueError(f"32バイトである必要があります。実際: {len(data)}バイト")
    return data


def normalize_v(v: int) -> int:
    """v (27/28 もしくは 0/1) を recovery id (0/1) に変換する"""
    if v in (27, 28):
        return v - 27
    if v in (0, 1):
        return v
    raise ValueError(f"vの値が不正です: {v}")


def public_key_to_address(public_key: PublicKey) -> str:
    uncompressed = public_key.format(compressed=False)
    return to_checksum_address(keccak(uncompressed[1:])[-20:])


def private_key_to_address(private_key: Union[str, bytes]) -> str:
    return public_key_to_address(load_private_key(private_key).public_key)


def load_private_key(private_key: Union[str, bytes]) -> PrivateKey:
    if isinstance(private_key, str):
        private_key = bytes.fromhex(private_key[2:] if private_key.startswith("0x") else private_key)
    return PrivateKey(private_key)


def recover_address(digest: bytes, v: int, r: str, s: str) -> str:
    """ECDSA 公開鍵リカバリで署名者アドレスを求める"""
    r_bytes = hex_to_bytes32(r)
    s_bytes = hex_to_bytes32(s)
    s_int = int.from_bytes(s_bytes, "big")
    # malleability 対策: s は曲線位数の半分以下
    if s_int == 0 or s_int > SECP256K1_N // 2:
        raise ValueError("sの値が不正です (high-s)")
    signature = r_bytes + s_bytes + bytes([normalize_v(v)])
    public_key = PublicKey.from_signature_and_message(signature, digest, hasher=None)
    return public_key_to_address(public_key)


def sign_typed_data_hash(digest: bytes, private_key: Union[str, bytes]) -> Tuple[int, str, str]:
    """digest に署名して (v, r, s) を返す。v は 27/28"""
    signature = load_private_key(private_key).sign_recoverable(digest, hasher=None)
    r, s, recovery_id = signature[:32], signature[32:64], signature[64]
    return recovery_id + 27, "0x" + r.hex(), "0x" + s.hex()


def join_signature(v: int, r: str, s: str) -> str:
    return "0x" + hex_to_bytes32(r).hex() + hex_to_bytes32(s).hex() + f"{v:02x}"


def split_signature(signature: str) -> Tuple[int, str, str]:
    """65バイト署名 (0x + r + s + v) を分解する"""
    sig = signature[2:] if signature.startswith("0x") else signature
    if len(sig) != 130:
        raise ValueError(f"署名の長さが不正です: {len(sig)}")
    return int(sig[128:130], 16), "0x" + sig[0:64], "0x" + sig[64:128]


def same_address(a: str, b: str) -> bool:
    return str(a).lower() == str(b).lower()
