"""
Unit tests for the contract address book.
"""
from dataclasses import asdict

import pytest

from rollups_node.addresses import (
    ENV_VARS,
    AddressError,
    get_book_from_env,
    get_test_book,
    parse_address,
)


def full_environ():
    return {
        variable: "0x" + f"{index:02x}" * 20
        for index, variable in enumerate(ENV_VARS.values(), start=1)
    }


class TestParseAddress:
    """Test address validation."""

    def test_lowercases(self):
        assert parse_address("0x70ac08179605AF2D9e75782b8DEcDD3c22aA4D0C") == \
            "0x70ac08179605af2d9e75782b8decdd3c22aa4d0c"

    def test_missing_prefix(self):
        with pytest.raises(AddressError):
            parse_address("70ac08179605AF2D9e75782b8DEcDD3c22aA4D0C")

    def test_not_hex(self):
        with pytest.raises(AddressError, match="failed to decode address INPUT_BOX"):
            parse_address("0x" + "zz" * 20, "INPUT_BOX")

    def test_wrong_length(self):
        with pytest.raises(AddressError, match="wrong number of bytes"):
            parse_address("0xdeadbeef")

    def test_whitespace_rejected(self):
        with pytest.raises(AddressError):
            parse_address("0x" + "ab " * 20)


class TestBooks:
    """Test test and environment address books."""

    def test_test_book(self):
        book = get_test_book()

        assert book.input_box == "0x59b22d57d4f067708ab0c00552767405926dc768"
        assert book.cartesi_dapp == "0x70ac08179605af2d9e75782b8decdd3c22aa4d0c"
        assert all(len(address) == 42 for address in asdict(book).values())

    def test_book_from_env(self):
        book = get_book_from_env(full_environ())

        assert book.cartesi_dapp_factory == "0x" + "01" * 20
        assert book.cartesi_dapp == "0x" + "09" * 20

    def test_missing_variable(self):
        environ = full_environ()
        del environ["INPUT_BOX"]

        with pytest.raises(AddressError, match="INPUT_BOX"):
            get_book_from_env(environ)

    def test_malformed_variable(self):
        environ = full_environ()
        environ["ERC20_PORTAL"] = "0x1234"

        with pytest.raises(AddressError, match="ERC20_PORTAL"):
            get_book_from_env(environ)
