import json
import logging
from collections.abc import Callable, Iterable, Iterator, Sequence
from itertools import chain
from typing import Any, Generic, TypeVar, cast

from ._abi_types import ABI_JSON, ABIDecodingError, MalformedABI
from ._entities import LogTopic, NetworkId
from ._error_decoder import LEGACY_ERROR, PANIC_ERROR, DecodedError, ErrorDecoder
from ._fragments import (
    Constructor,
    DecodedFragment,
    Error,
    Event,
    FieldValues,
    Method,
)
from ._normalizer import normalize_abi
from ._overloads import MultiError, MultiEvent, MultiMethod, Overloaded
from ._signatures import SELECTOR_LENGTH, TOPIC_LENGTH, data_bytes, selector_key

logger = logging.getLogger(__name__)


EntryType = TypeVar("EntryType")

MappedType = TypeVar("MappedType")


class UnknownSelector(Exception):
    """Raised when call data or a log entry does not correspond to any fragment in the ABI."""


class UnknownError(Exception):
    """Raised when error data does not correspond to any error in the ABI."""


class DispatchTable(Generic[EntryType]):
    """
    A lookup table of fragments of one kind.

    Entries (fragments, or overload groups if several fragments share a name)
    are available by name, either as attributes or via ``[]``.
    Individual fragments are available via ``[]`` by their canonical signature
    (``"transfer(address,uint256)"``) or their selector
    (as bytes or a ``0x``-prefixed hex string).
    """

    def __init__(self, entries: Iterable[EntryType]):
        self._by_name: dict[str, EntryType] = {}
        self._by_key: dict[str | bytes, Any] = {}
        self._fragments: list[Any] = []

        for entry in entries:
            name = cast("Any", entry).name
            self._by_name[name] = entry
            members = entry.members if isinstance(entry, Overloaded) else (entry,)
            for fragment in members:
                self._fragments.append(fragment)
                self._by_key[fragment.signature] = fragment
                # On a selector collision between different fragments the last one wins
                self._by_key[fragment.selector] = fragment

    def get(self, key: str | bytes, default: Any = None) -> Any:
        """
        Returns the entry corresponding to the name, the signature, or the selector,
        or ``default`` if there is none.
        """
        key = selector_key(key)
        if isinstance(key, str):
            if key in self._by_name:
                return self._by_name[key]
            key = "".join(key.split())
        return self._by_key.get(key, default)

    def by_selector(self, selector: bytes) -> Any:
        """Returns the fragment with the given selector (or topic), or ``None``."""
        return self._by_key.get(selector)

    def map(self, func: Callable[[Any], MappedType]) -> "DispatchTable[MappedType]":
        """
        Returns a table with the same keys, and with ``func`` applied
        to every entry and every individual fragment.
        """
        mapped: dict[int, MappedType] = {}

        def apply(item: Any) -> MappedType:
            if id(item) not in mapped:
                mapped[id(item)] = func(item)
            return mapped[id(item)]

        table: DispatchTable[MappedType] = DispatchTable([])
        table._by_name = {name: apply(entry) for name, entry in self._by_name.items()}
        table._by_key = {key: apply(fragment) for key, fragment in self._by_key.items()}
        table._fragments = [apply(fragment) for fragment in self._fragments]
        return table

    def fragments(self) -> Iterator[Any]:
        """Returns the iterator over all the individual fragments in the declaration order."""
        return iter(self._fragments)

    def __getitem__(self, key: str | bytes) -> Any:
        """Returns the entry corresponding to the name, the signature, or the selector."""
        entry = self.get(key)
        if entry is None:
            raise KeyError(key)
        return entry

    def __getattr__(self, name: str) -> EntryType:
        """Returns the entry by name."""
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._by_name[name]
        except KeyError as exc:
            raise AttributeError(name) from exc

    def __contains__(self, key: str | bytes) -> bool:
        return self.get(key) is not None

    def __iter__(self) -> Iterator[EntryType]:
        """Returns the iterator over all entries."""
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)


def _group(entries: Iterable[Any], group_type: type[Overloaded[Any]]) -> list[Any]:
    fragments: dict[str, list[Any]] = {}
    for entry in entries:
        members = entry.members if isinstance(entry, Overloaded) else (entry,)
        fragments.setdefault(entry.name, []).extend(members)

    grouped = []
    for name, same_name in fragments.items():
        if len(same_name) == 1:
            grouped.append(same_name[0])
        else:
            logger.debug("Overloaded `%s`: %d candidates", name, len(same_name))
            grouped.append(group_type(*same_name))
    return grouped


def _topic_bytes(topic: bytes | str | LogTopic) -> bytes:
    if isinstance(topic, LogTopic):
        return bytes(topic)
    topic_bytes = data_bytes(topic)
    if len(topic_bytes) != TOPIC_LENGTH:
        raise ValueError(f"A log topic must be {TOPIC_LENGTH} bytes long, got {len(topic_bytes)}")
    return topic_bytes


class ContractABI:
    """
    A wrapper for contract ABI.

    Contract methods are grouped by type and are accessible via the attributes below.
    """

    constructor: Constructor
    """Contract's constructor."""

    method: DispatchTable[Method | MultiMethod]
    """Contract's regular methods."""

    event: DispatchTable[Event | MultiEvent]
    """Contract's events."""

    error: DispatchTable[Error | MultiError]
    """Contract's errors."""

    @classmethod
    def from_json(
        cls,
        json_abi: ABI_JSON,
        *,
        network_id: None | NetworkId = None,
        decode_bytes_to_hex: bool = False,
    ) -> "ContractABI":
        """
        Creates this object from a JSON ABI (e.g. generated by a Solidity compiler),
        given as a list of entries or a JSON string.
        Entries can also be human-readable fragment signatures.

        If ``network_id`` is given, addresses will be decoded into network-qualified strings.
        If ``decode_bytes_to_hex`` is ``True``, bytestrings will be decoded into hex strings.
        """
        if isinstance(json_abi, str):
            try:
                json_abi = json.loads(json_abi)
            except json.JSONDecodeError as exc:
                raise MalformedABI(f"Could not parse the JSON ABI: {exc}") from exc
        if not isinstance(json_abi, Sequence) or isinstance(json_abi, str):
            raise MalformedABI(f"JSON ABI must be a list of entries, got {type(json_abi).__name__}")

        entries = normalize_abi(
            json_abi, network_id=network_id, decode_bytes_to_hex=decode_bytes_to_hex
        )

        constructor = None
        methods = []
        events = []
        errors = []

        for entry in entries:
            try:
                if entry["type"] == "constructor":
                    if constructor:
                        raise MalformedABI(
                            "JSON ABI contains more than one constructor declarations"
                        )
                    constructor = Constructor.from_json(entry)
                elif entry["type"] == "function":
                    methods.append(Method.from_json(entry))
                elif entry["type"] == "event":
                    events.append(Event.from_json(entry))
                else:
                    errors.append(Error.from_json(entry))
            except MalformedABI:
                raise
            except ValueError as exc:
                raise MalformedABI(
                    f"Invalid ABI entry `{entry.get('name', entry['type'])}`: {exc}"
                ) from exc

        return cls(constructor=constructor, methods=methods, events=events, errors=errors)

    def __init__(
        self,
        constructor: None | Constructor = None,
        methods: None | Iterable[Method | MultiMethod] = None,
        events: None | Iterable[Event | MultiEvent] = None,
        errors: None | Iterable[Error | MultiError] = None,
    ):
        if constructor is None:
            constructor = Constructor(inputs=[])

        self.constructor = constructor
        self.method = DispatchTable(_group(methods or [], MultiMethod))
        self.event = DispatchTable(_group(events or [], MultiEvent))
        self.error = DispatchTable(_group(errors or [], MultiError))

        self._error_decoder = ErrorDecoder(self.error.fragments())
        self._error_by_selector = {
            error.selector: error
            for error in chain([PANIC_ERROR, LEGACY_ERROR], self.error.fragments())
        }

        logger.debug(
            "Built ABI dispatch tables: %d methods, %d events, %d errors",
            len(list(self.method.fragments())),
            len(list(self.event.fragments())),
            len(list(self.error.fragments())),
        )

    def __getitem__(self, key: str | bytes) -> Any:
        """
        Returns a method, an event, or an error (in that order of priority)
        by its name, signature, or selector.
        """
        for table in (self.method, self.event, self.error):
            entry = table.get(key)
            if entry is not None:
                return entry
        raise KeyError(key)

    def decode_call_data(self, data: bytes | str) -> DecodedFragment:
        """
        Decodes the call data (including the selector) of one of the methods.
        Raises :py:class:`UnknownSelector` if the selector does not belong to any method.
        """
        call_data = data_bytes(data)
        if len(call_data) < SELECTOR_LENGTH:
            raise UnknownSelector("Call data too short to contain a selector")

        method = self.method.by_selector(call_data[:SELECTOR_LENGTH])
        if method is None:
            raise UnknownSelector(
                f"Could not find a method with selector "
                f"0x{call_data[:SELECTOR_LENGTH].hex()} in the ABI"
            )
        return cast("Method", method).decode_call(call_data)

    def decode_log(
        self, topics: Sequence[bytes | str | LogTopic], data: bytes | str
    ) -> DecodedFragment:
        """
        Decodes a log entry of one of the events.
        The event is chosen by the first topic;
        if it does not match, anonymous events with the matching number of indexed fields
        are tried in the declaration order.
        Raises :py:class:`UnknownSelector` if no event matches,
        and ``ValueError`` if a topic is not 32 bytes long.
        """
        topics_bytes = [_topic_bytes(topic) for topic in topics]
        log_data = data_bytes(data)

        if topics_bytes:
            event = self.event.by_selector(topics_bytes[0])
            if event is not None and not event.anonymous:
                return cast("Event", event).decode_log(topics_bytes, log_data)

        for event in self.event.fragments():
            if not event.anonymous or event.fields.indexed_count != len(topics_bytes):
                continue
            try:
                return cast("Event", event).decode_log(topics_bytes, log_data)
            except (ABIDecodingError, ValueError, TypeError) as exc:
                logger.debug("Log entry does not match `%s`: %s", event.signature, exc)

        topic_str = f"0x{topics_bytes[0].hex()}" if topics_bytes else "(no topics)"
        raise UnknownSelector(f"Could not find an event with topic {topic_str} in the ABI")

    def resolve_error(self, error_data: bytes | str) -> tuple[Error, FieldValues]:
        """
        Given the packed error data, attempts to find the error in the ABI
        and decode the data into its fields.
        """
        error_bytes = data_bytes(error_data)
        if len(error_bytes) < SELECTOR_LENGTH:
            raise ValueError("Error data too short to contain a selector")

        selector, data = error_bytes[:SELECTOR_LENGTH], error_bytes[SELECTOR_LENGTH:]

        if selector in self._error_by_selector:
            error = self._error_by_selector[selector]
            decoded = error.decode_fields(data)
            return error, decoded

        raise UnknownError(f"Could not find an error with selector {selector.hex()} in the ABI")

    def decode_error(self, error_data: bytes | str) -> DecodedError:
        """
        Decodes the error data using the errors of this ABI,
        falling back to ``Error(string)`` and ``Panic(uint256)``.
        Never raises on unknown data, returning an undecodable error instead.
        """
        return self._error_decoder.decode(error_data)

    def to_json(self) -> ABI_JSON:
        """Returns the serialized list of contract items (methods, errors, events)."""
        all_items: Iterable[Constructor | Method | Event | Error] = chain(
            [self.constructor],
            self.method.fragments(),
            self.event.fragments(),
            self.error.fragments(),
        )
        return [item.to_json() for item in all_items]

    def __str__(self) -> str:
        all_items: Iterable[Constructor | Method | Event | Error] = chain(
            [self.constructor],
            self.method.fragments(),
            self.event.fragments(),
            self.error.fragments(),
        )

        indent = "    "
        method_list = [indent + str(item) for item in all_items]
        return "{\n" + "\n".join(method_list) + "\n}"
