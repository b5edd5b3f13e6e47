"""
Deterministic clone address prediction (CREATE2 over an EIP-1167 clone)
"""

from typing import Union

from eth_abi import encode
from eth_hash.auto import keccak
from eth_utils import to_checksum_address

from privateoffer.exceptions import InvalidInput
from privateoffer.models import FixedArgs, checksum

# EIP-1167 minimal proxy creation code, template address goes in between
CLONE_INIT_CODE_PREFIX = bytes.fromhex("3d602d80600a3d3981f3363d3d373d3d3d363d73")
CLONE_INIT_CODE_SUFFIX = bytes.fromhex("5af43d82803e903d91602b57fd5bf3")

FIXED_ARGS_ABI = "(address,address,uint256,uint256,uint256,uint256,address,address)"


def to_bytes32(value: Union[bytes, str], name: str = "salt") -> bytes:
    """Accept 32 raw bytes or a 64-digit hex string (0x optional)"""
    if isinstance(value, str):
        clean = value[2:] if value.startswith('0x') else value
        try:
            value = bytes.fromhex(clean)
        except ValueError as e:
            raise InvalidInput(f"{name} is not valid hex: {value!r}") from e
    if not isinstance(value, (bytes, bytearray)):
        raise InvalidInput(f"{name} must be bytes or hex string")
    if len(value) != 32:
        raise InvalidInput(f"{name} must be exactly 32 bytes, got {len(value)}")
    return bytes(value)


def clone_init_code(template: str) -> bytes:
    template_bytes = bytes.fromhex(checksum(template, "template")[2:])
    return CLONE_INIT_CODE_PREFIX + template_bytes + CLONE_INIT_CODE_SUFFIX


def offer_salt(salt: Union[bytes, str], fixed_args: FixedArgs) -> bytes:
    """Bind the caller's salt to the offer terms: keccak256(abi.encode(salt, fixedArgs))"""
    return keccak(encode(["bytes32", FIXED_ARGS_ABI], [to_bytes32(salt), fixed_args.as_tuple()]))


def calculate_create2_address(deployer: str, salt: Union[bytes, str], init_code_hash: Union[bytes, str]) -> str:
    """Calculate CREATE2 address"""
    deployer_bytes = bytes.fromhex(checksum(deployer, "deployer")[2:])
    # CREATE2 formula: keccak256(0xff + deployer + salt + init_code_hash)
    data = b"\xff" + deployer_bytes + to_bytes32(salt) + to_bytes32(init_code_hash, "init_code_hash")
    # Address = last 20 bytes
    return to_checksum_address("0x" + keccak(data)[-20:].hex())


def predict(factory: str, template: str, salt: Union[bytes, str], fixed_args: FixedArgs) -> str:
    """Address at which the factory will create the clone for (salt, fixed_args)"""
    return calculate_create2_address(
        factory,
        offer_salt(salt, fixed_args),
        keccak(clone_init_code(template)),
    )
