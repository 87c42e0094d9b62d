import logging
from collections.abc import Iterable, Mapping
from copy import deepcopy
from dataclasses import dataclass
from typing import Any

from ._abi_types import ABI_JSON, MalformedABI
from ._entities import NetworkId, network_prefix
from ._human_readable import parse_fragment

logger = logging.getLogger(__name__)

_ANNOTATED_KINDS = {"constructor", "function", "event", "error"}
_SKIPPED_KINDS = {"fallback", "receive"}


@dataclass(frozen=True)
class DecodeOptions:
    """Options affecting how decoded values are represented."""

    network_id: None | NetworkId = None
    """
    If set, ``address`` values are decoded into network-qualified strings
    instead of :py:class:`~vinculum.Address` objects.
    """

    decode_bytes_to_hex: bool = False
    """If ``True``, ``bytes`` and ``bytes<N>`` values are decoded into hex strings."""

    def __post_init__(self) -> None:
        if self.network_id is not None:
            # Fail early on an invalid network id
            network_prefix(self.network_id)


def _base_type(type_str: str) -> str:
    return type_str.split("[", 1)[0]


def _annotate_params(params: list[dict[str, Any]], options: DecodeOptions) -> list[dict[str, Any]]:
    annotated = []
    for param in params:
        param = dict(param)
        base = _base_type(param["type"])
        if base == "address" and options.network_id is not None:
            param["networkId"] = options.network_id
        if base.startswith("bytes") and options.decode_bytes_to_hex:
            param["decodeToHex"] = True
        if base == "tuple":
            param["components"] = _annotate_params(param.get("components", []), options)
        annotated.append(param)
    return annotated


def _check_params(params: Any, context: str) -> None:
    if not isinstance(params, list):
        raise MalformedABI(f"{context}: parameters must be a list, got {type(params).__name__}")
    for param in params:
        if not isinstance(param, Mapping) or not isinstance(param.get("type"), str):
            raise MalformedABI(f"{context}: each parameter must be a mapping with a `type`")
        if _base_type(param["type"]) == "tuple":
            _check_params(param.get("components"), context)


def _state_mutability(entry: Mapping[str, Any]) -> str:
    if "stateMutability" in entry:
        return str(entry["stateMutability"])
    # Legacy ABI entries
    if entry.get("constant"):
        return "view"
    if entry.get("payable"):
        return "payable"
    return "nonpayable"


def _normalize_entry(entry: Mapping[str, Any]) -> dict[str, Any]:
    kind = entry.get("type", "function")
    context = f"ABI entry `{entry.get('name', kind)}`"

    normalized: dict[str, Any] = {"type": kind}

    if kind in ("function", "event", "error"):
        name = entry.get("name")
        if not isinstance(name, str) or not name:
            raise MalformedABI(f"ABI entry of type `{kind}` must have a non-empty `name`")
        normalized["name"] = name

    inputs = deepcopy(entry.get("inputs", []))
    _check_params(inputs, context)
    normalized["inputs"] = inputs

    if kind == "function":
        outputs = deepcopy(entry.get("outputs", []))
        _check_params(outputs, context)
        normalized["outputs"] = outputs
        normalized["stateMutability"] = _state_mutability(entry)
    elif kind == "constructor":
        normalized["stateMutability"] = _state_mutability(entry)
        if entry.get("outputs"):
            normalized["outputs"] = deepcopy(entry["outputs"])
    elif kind == "event":
        normalized["anonymous"] = bool(entry.get("anonymous", False))
        normalized["inputs"] = [
            {**param, "indexed": bool(param.get("indexed", False))} for param in inputs
        ]

    return normalized


def normalize_abi(
    entries: Iterable[str | Mapping[str, ABI_JSON]],
    *,
    network_id: None | NetworkId = None,
    decode_bytes_to_hex: bool = False,
) -> list[dict[str, ABI_JSON]]:
    """
    Returns the normalized copy of the given JSON ABI.

    The entries can be JSON ABI entries or human-readable fragment signatures (or a mix of both).
    Legacy fields are converted to their modern equivalents,
    ``fallback`` and ``receive`` entries are skipped,
    and every ``address``-based parameter (including the ones in nested tuples)
    is annotated with ``networkId``, and every ``bytes``-based parameter with ``decodeToHex``,
    if the corresponding options are set.

    The given entries are not modified.
    """
    options = DecodeOptions(network_id=network_id, decode_bytes_to_hex=decode_bytes_to_hex)

    normalized = []
    for raw_entry in entries:
        if isinstance(raw_entry, str):
            entry: Mapping[str, Any] = parse_fragment(raw_entry)
        elif isinstance(raw_entry, Mapping):
            entry = raw_entry
        else:
            raise MalformedABI(
                f"ABI entry must be a mapping or a string, got {type(raw_entry).__name__}"
            )

        kind = entry.get("type", "function")
        if kind in _SKIPPED_KINDS:
            logger.debug("Skipping a `%s` ABI entry", kind)
            continue
        if kind not in _ANNOTATED_KINDS:
            raise MalformedABI(f"Unknown ABI entry type: {kind}")

        normalized_entry = _normalize_entry(entry)
        normalized_entry["inputs"] = _annotate_params(normalized_entry["inputs"], options)
        if "outputs" in normalized_entry:
            normalized_entry["outputs"] = _annotate_params(normalized_entry["outputs"], options)
        normalized.append(normalized_entry)

    return normalized
