"""
Parsing of human-readable fragment signatures, e.g.

- ``function balanceOf(address owner) view returns (uint256)``
- ``event Transfer(address indexed from, address indexed to, uint256 value)``
- ``error InsufficientBalance(uint256 required, uint256 available)``
- ``constructor(string name, uint8 decimals) payable``

into JSON ABI entries.
"""

import re
from typing import Any

from ._abi_types import ABI_JSON, MalformedABI, Type, dispatch_type

_KEYWORD_RE = re.compile(r"^(function|event|error|constructor)\b\s*")
_NAME_RE = re.compile(r"^([A-Za-z_$][\w$]*)\s*")
_ARRAY_SUFFIX_RE = re.compile(r"^((?:\[\d*\])*)")

_DATA_LOCATIONS = {"memory", "calldata", "storage"}
_VISIBILITIES = {"external", "public", "internal", "private", "virtual", "override"}
_MUTABILITIES = {"pure", "view", "nonpayable", "payable"}

# `uint` and `int` are aliases of the 256-bit types.
_TYPE_ALIASES = {"uint": "uint256", "int": "int256"}


def _closing_paren(text: str, start: int) -> int:
    """Returns the position of the parenthesis closing the one at ``start``."""
    depth = 0
    for idx in range(start, len(text)):
        if text[idx] == "(":
            depth += 1
        elif text[idx] == ")":
            depth -= 1
            if depth == 0:
                return idx
    raise MalformedABI(f"Unbalanced parentheses in `{text}`")


def _split_params(text: str) -> list[str]:
    text = text.strip()
    if not text:
        return []

    result: list[str] = []
    depth = 0
    token_start = 0
    for idx, char in enumerate(text):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise MalformedABI(f"Unbalanced parentheses in `{text}`")
        elif char == "," and depth == 0:
            result.append(text[token_start:idx].strip())
            token_start = idx + 1
    if depth != 0:
        raise MalformedABI(f"Unbalanced parentheses in `{text}`")
    result.append(text[token_start:].strip())

    if any(not item for item in result):
        raise MalformedABI(f"Empty parameter in `{text}`")
    return result


def _parse_param(text: str, *, allow_indexed: bool = False) -> dict[str, ABI_JSON]:
    entry: dict[str, ABI_JSON] = {}

    tuple_prefix = "tuple("
    if text.startswith(("(", tuple_prefix)):
        open_paren = text.index("(")
        close_paren = _closing_paren(text, open_paren)
        suffix_match = _ARRAY_SUFFIX_RE.match(text[close_paren + 1 :])
        # The regex always matches, possibly with an empty string
        suffix = suffix_match.group(1) if suffix_match else ""
        entry["type"] = "tuple" + suffix
        entry["components"] = [
            _parse_param(component)
            for component in _split_params(text[open_paren + 1 : close_paren])
        ]
        rest = text[close_paren + 1 + len(suffix) :].split()
    else:
        type_str, *rest = text.split()
        base = type_str.split("[", 1)[0]
        entry["type"] = _TYPE_ALIASES.get(base, base) + type_str[len(base) :]

    name = ""
    indexed = False
    for token in rest:
        if token == "indexed":
            if not allow_indexed:
                raise MalformedABI(f"`indexed` is only allowed in event parameters: `{text}`")
            indexed = True
        elif token in _DATA_LOCATIONS:
            continue
        elif not name and _NAME_RE.fullmatch(token):
            name = token
        else:
            raise MalformedABI(f"Unexpected token `{token}` in parameter `{text}`")

    entry["name"] = name
    if allow_indexed:
        entry["indexed"] = indexed
    return entry


def _parse_params(text: str, *, allow_indexed: bool = False) -> list[dict[str, ABI_JSON]]:
    return [_parse_param(param, allow_indexed=allow_indexed) for param in _split_params(text)]


def _take_params(text: str) -> tuple[str, str]:
    """Splits ``(params) rest`` into the contents of the parentheses and the rest."""
    text = text.strip()
    if not text.startswith("("):
        raise MalformedABI(f"Expected a parameter list, got `{text}`")
    close_paren = _closing_paren(text, 0)
    return text[1:close_paren], text[close_paren + 1 :].strip()


def _parse_function_modifiers(text: str, signature: str) -> tuple[str, list[dict[str, ABI_JSON]]]:
    mutability = "nonpayable"
    outputs: list[dict[str, ABI_JSON]] = []

    while text:
        if text.startswith("returns"):
            outputs_text, text = _take_params(text[len("returns") :])
            outputs = _parse_params(outputs_text)
            continue

        token, _, text = text.partition(" ")
        text = text.strip()
        if token in _MUTABILITIES:
            mutability = token
        elif token == "constant":
            mutability = "view"
        elif token not in _VISIBILITIES:
            raise MalformedABI(f"Unexpected modifier `{token}` in `{signature}`")

    return mutability, outputs


def parse_fragment(signature: str) -> dict[str, ABI_JSON]:
    """
    Parses a human-readable fragment signature into a JSON ABI entry.
    A signature without a leading keyword is treated as a function.
    """
    text = " ".join(signature.split())
    if not text:
        raise MalformedABI("Empty fragment signature")

    keyword_match = _KEYWORD_RE.match(text)
    kind = keyword_match.group(1) if keyword_match else "function"
    if keyword_match:
        text = text[keyword_match.end() :]

    if kind == "constructor":
        inputs_text, rest = _take_params(text)
        mutability = "nonpayable"
        for token in rest.split():
            if token == "payable":
                mutability = "payable"
            elif token not in _VISIBILITIES:
                raise MalformedABI(f"Unexpected modifier `{token}` in `{signature}`")
        return {
            "type": "constructor",
            "inputs": _parse_params(inputs_text),
            "stateMutability": mutability,
        }

    name_match = _NAME_RE.match(text)
    if not name_match:
        raise MalformedABI(f"Missing the fragment name in `{signature}`")
    name = name_match.group(1)
    inputs_text, rest = _take_params(text[name_match.end() :])

    entry: dict[str, Any]
    if kind == "event":
        anonymous = False
        for token in rest.split():
            if token != "anonymous":
                raise MalformedABI(f"Unexpected modifier `{token}` in `{signature}`")
            anonymous = True
        entry = {
            "type": "event",
            "name": name,
            "inputs": _parse_params(inputs_text, allow_indexed=True),
            "anonymous": anonymous,
        }
    elif kind == "error":
        if rest:
            raise MalformedABI(f"Unexpected modifier `{rest}` in `{signature}`")
        entry = {"type": "error", "name": name, "inputs": _parse_params(inputs_text)}
    else:
        mutability, outputs = _parse_function_modifiers(rest, signature)
        entry = {
            "type": "function",
            "name": name,
            "inputs": _parse_params(inputs_text),
            "outputs": outputs,
            "stateMutability": mutability,
        }

    return entry


def parse_type(type_str: str) -> Type:
    """Parses a single human-readable parameter declaration into a type."""
    return dispatch_type(_parse_param(" ".join(type_str.split())))
