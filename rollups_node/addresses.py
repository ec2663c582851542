"""
Contract addresses used by the node.

Addresses usually come from environment variables; the addresses of the
local test deployment are hard-coded here.
"""
import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional


ADDRESS_LENGTH = 20


class AddressError(ValueError):
    """Raised when a contract address is missing or malformed."""
    pass


@dataclass(frozen=True)
class Book:
    """Contract addresses as lowercase 0x-prefixed hex."""
    cartesi_dapp_factory: str
    dapp_address_relay: str
    erc1155_batch_portal: str
    erc1155_single_portal: str
    erc20_portal: str
    erc721_portal: str
    ether_portal: str
    input_box: str
    cartesi_dapp: str


# Environment variable for each field of Book
ENV_VARS = {
    "cartesi_dapp_factory": "CARTESI_DAPP_FACTORY",
    "dapp_address_relay": "DAPP_ADDRESS_RELAY",
    "erc1155_batch_portal": "ERC1155_BATCH_PORTAL",
    "erc1155_single_portal": "ERC1155_SINGLE_PORTAL",
    "erc20_portal": "ERC20_PORTAL",
    "erc721_portal": "ERC721_PORTAL",
    "ether_portal": "ETHER_PORTAL",
    "input_box": "INPUT_BOX",
    "cartesi_dapp": "CARTESI_DAPP",
}


def parse_address(value: str, name: str = "address") -> str:
    """
    Validate a 0x-prefixed 20-byte hex address.

    Args:
        value: Hex string
        name: Name used in error messages

    Returns:
        Address in lowercase 0x hex

    Raises:
        AddressError: If the value is not valid hex or has the wrong length
    """
    if not value.startswith(("0x", "0X")):
        raise AddressError(f"failed to decode address {name}: missing 0x prefix")

    digits = value[2:]
    try:
        if any(c.isspace() for c in digits):
            raise ValueError(digits)
        raw = bytes.fromhex(digits)
    except ValueError:
        raise AddressError(f"failed to decode address {name}")

    if len(raw) != ADDRESS_LENGTH:
        raise AddressError(f"address {name} with wrong number of bytes ({len(raw)})")

    return "0x" + raw.hex()


def get_test_book() -> Book:
    """Addresses of the local test deployment."""
    return Book(
        cartesi_dapp_factory=parse_address("0x7122cd1221C20892234186facfE8615e6743Ab02"),
        dapp_address_relay=parse_address("0xF5DE34d6BbC0446E2a45719E718efEbaaE179daE"),
        erc1155_batch_portal=parse_address("0xedB53860A6B52bbb7561Ad596416ee9965B055Aa"),
        erc1155_single_portal=parse_address("0x7CFB0193Ca87eB6e48056885E026552c3A941FC4"),
        erc20_portal=parse_address("0x9C21AEb2093C32DDbC53eEF24B873BDCd1aDa1DB"),
        erc721_portal=parse_address("0x237F8DD094C0e47f4236f12b4Fa01d6Dae89fb87"),
        ether_portal=parse_address("0xFfdbe43d4c855BF7e0f105c400A50857f53AB044"),
        input_box=parse_address("0x59b22D57D4f067708AB0c00552767405926dc768"),
        cartesi_dapp=parse_address("0x70ac08179605AF2D9e75782b8DEcDD3c22aA4D0C"),
    )


def get_book_from_env(environ: Optional[Mapping[str, str]] = None) -> Book:
    """
    Read the address book from environment variables.

    Raises:
        AddressError: If any address is unset or malformed
    """
    if environ is None:
        environ = os.environ

    values = {}
    for field in fields(Book):
        variable = ENV_VARS[field.name]
        value = environ.get(variable)
        if value is None:
            raise AddressError(f"missing address {variable}")
        values[field.name] = parse_address(value, variable)

    return Book(**values)
