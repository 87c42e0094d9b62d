from collections.abc import Iterable

from eth_utils import keccak

from ._abi_types import Type, canonical_signature

# The number of bytes in a function selector.
SELECTOR_LENGTH = 4

# The number of bytes in an event topic.
TOPIC_LENGTH = 32


def fragment_signature(name: str, types: Iterable[Type]) -> str:
    """
    Returns the canonical signature of a fragment: its name followed by
    the parenthesized comma-separated types (tuples expanded, no parameter names).
    """
    return name + canonical_signature(types)


def function_selector(signature: str) -> bytes:
    """Returns the selector of a function or an error with the given canonical signature."""
    return keccak(signature.encode())[:SELECTOR_LENGTH]


def event_topic(signature: str) -> bytes:
    """Returns the topic of an event with the given canonical signature."""
    return keccak(signature.encode())


def selector_key(key: bytes | str) -> bytes | str:
    """
    Converts a ``0x``-prefixed hex string to bytes, leaving other strings
    (names and signatures) as they are.
    """
    if isinstance(key, str) and key.startswith("0x"):
        try:
            return bytes.fromhex(key[2:])
        except ValueError:
            return key
    if isinstance(key, bytes):
        return key
    if isinstance(key, str):
        return key
    # `LogTopic` and other typed data
    return bytes(key)


def data_bytes(data: bytes | str) -> bytes:
    """Converts data given as bytes or a (possibly ``0x``-prefixed) hex string."""
    if isinstance(data, str):
        hex_str = data[2:] if data.startswith(("0x", "0X")) else data
        return bytes.fromhex(hex_str)
    return bytes(data)
