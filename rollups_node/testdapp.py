"""
Messages understood by the test DApp.

A message is one kind byte followed by the payload.
"""
from enum import IntEnum


class MessageError(ValueError):
    """Raised when a message cannot be decoded."""
    pass


class MessageKind(IntEnum):
    # Ask the DApp to echo the payload back
    ECHO = 0
    # Ask the DApp to reject the input; the payload is sent as a report
    REJECT = 1


def get_message_kind(data: bytes) -> MessageKind:
    """
    Read the kind of a message.

    Raises:
        MessageError: If data is empty or the kind byte is unknown
    """
    if len(data) < 1:
        raise MessageError("empty data")
    try:
        return MessageKind(data[0])
    except ValueError:
        raise MessageError(f"invalid kind 0x{data[0]:x}")


def _encode(kind: MessageKind, payload: bytes) -> bytes:
    return bytes([kind]) + bytes(payload)


def _decode(kind: MessageKind, data: bytes) -> bytes:
    if get_message_kind(data) != kind:
        raise MessageError("invalid message kind")
    return bytes(data[1:])


def encode_echo(payload: bytes) -> bytes:
    return _encode(MessageKind.ECHO, payload)


def decode_echo(data: bytes) -> bytes:
    return _decode(MessageKind.ECHO, data)


def encode_reject(report: bytes) -> bytes:
    return _encode(MessageKind.REJECT, report)


def decode_reject(data: bytes) -> bytes:
    return _decode(MessageKind.REJECT, data)
