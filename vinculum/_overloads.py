from collections.abc import Iterator, Sequence
from typing import Any, Generic, TypeVar

from ._abi_types import ABI_JSON
from ._entities import LogTopic
from ._fragments import (
    DecodedFragment,
    DuplicateSignature,
    Error,
    Event,
    EventFilter,
    FieldValues,
    Method,
    MethodCall,
)
from ._signatures import SELECTOR_LENGTH, selector_key

FragmentType = TypeVar("FragmentType", Method, Event, Error)


class NoMatchingOverload(TypeError):
    """
    Raised when none of the overloaded fragments sharing a name
    accept the given arguments, selector, or signature.
    """


class Overloaded(Generic[FragmentType]):
    """
    A group of fragments of the same kind sharing the same name.
    The fragments are kept in the declaration order.
    """

    _kind = "fragment"

    def __init__(self, *fragments: FragmentType):
        if not fragments:
            raise ValueError(f"`{type(self).__name__}` must contain at least one {self._kind}")

        self._name = fragments[0].name
        self._fragments: list[FragmentType] = []
        self._by_signature: dict[str, FragmentType] = {}
        self._by_types: dict[str, FragmentType] = {}
        self._by_selector: dict[bytes, FragmentType] = {}

        for fragment in fragments:
            self._add(fragment)

    def _add(self, fragment: FragmentType) -> None:
        if fragment.name != self._name:
            raise ValueError(f"All overloaded {self._kind}s must have the same name")
        if fragment.signature in self._by_signature:
            raise DuplicateSignature(
                f"A {self._kind} {fragment.signature} "
                f"is already registered in this {type(self).__name__}"
            )
        self._fragments.append(fragment)
        self._by_signature[fragment.signature] = fragment
        self._by_types[fragment.signature[len(self._name) :]] = fragment
        self._by_selector[fragment.selector] = fragment

    @property
    def name(self) -> str:
        """The name shared by the fragments."""
        return self._name

    @property
    def members(self) -> tuple[FragmentType, ...]:
        """The fragments in the declaration order."""
        return tuple(self._fragments)

    def __iter__(self) -> Iterator[FragmentType]:
        return iter(self._fragments)

    def __len__(self) -> int:
        return len(self._fragments)

    def by_selector(self, selector: bytes) -> None | FragmentType:
        """Returns the fragment with the given selector (or topic), if there is one."""
        return self._by_selector.get(selector)

    def get(self, key: str | bytes) -> None | FragmentType:
        """
        Returns the fragment corresponding to the key, or ``None`` if there is none.
        The key can be the parenthesized parameter types (``"(uint256,string)"``),
        the full signature (``"f(uint256,string)"``),
        or the selector as bytes or a ``0x``-prefixed hex string.
        """
        key = selector_key(key)
        if isinstance(key, bytes):
            return self._by_selector.get(key)
        key = "".join(key.split())
        if key in self._by_types:
            return self._by_types[key]
        return self._by_signature.get(key)

    def resolve(self, key: str | bytes) -> FragmentType:
        """
        Returns the fragment corresponding to the key (see :py:meth:`get`),
        raising :py:class:`NoMatchingOverload` if there is none.
        """
        fragment = self.get(key)
        if fragment is None:
            raise NoMatchingOverload(
                f"No {self._kind} `{self._name}` corresponds to {key!r}; "
                f"candidates: {self._candidates()}"
            )
        return fragment

    def __getitem__(self, key: str | bytes) -> FragmentType:
        return self.resolve(key)

    def _candidates(self) -> str:
        return ", ".join(fragment.signature for fragment in self._fragments)

    def to_json(self) -> list[ABI_JSON]:
        """Returns the JSON ABI of all the fragments."""
        return [fragment.to_json() for fragment in self._fragments]

    def __str__(self) -> str:
        return "; ".join(str(fragment) for fragment in self._fragments)


class MultiMethod(Overloaded[Method]):
    """
    An overloaded contract method, containing several :py:class:`Method` objects
    with the same name but different input signatures.
    """

    _kind = "method"

    def with_method(self, method: Method) -> "MultiMethod":
        """Returns a new ``MultiMethod`` with the given method included."""
        return MultiMethod(*self._fragments, method)

    def select(self, *args: Any, **kwargs: Any) -> Method:
        """
        Returns the first declared method whose inputs can be bound to the given arguments
        and whose parameter types accept their values.
        """
        if len(self._fragments) == 1:
            # Propagate the binding error of the only candidate
            method = self._fragments[0]
            method.bind(*args, **kwargs)
            return method

        for method in self._fragments:
            try:
                bound_args = method.bind(*args, **kwargs)
            except TypeError:
                continue
            if method.inputs.accepts(bound_args.args):
                return method

        raise NoMatchingOverload(
            "Could not find a suitable overloaded method for the given arguments; "
            f"candidates: {self._candidates()}"
        )

    def __call__(self, *args: Any, **kwargs: Any) -> MethodCall:
        """Returns an encoded call with given arguments."""
        return self.select(*args, **kwargs)(*args, **kwargs)

    def _method_for_data(self, data_bytes: bytes) -> Method:
        method = self._by_selector.get(data_bytes[:SELECTOR_LENGTH])
        if method is None:
            raise NoMatchingOverload(
                f"The selector 0x{data_bytes[:SELECTOR_LENGTH].hex()} does not belong "
                f"to any of the methods `{self._name}`; candidates: {self._candidates()}"
            )
        return method

    def decode_input(self, data_bytes: bytes) -> FieldValues:
        """Decodes the call data (including the selector) of one of the methods."""
        return self._method_for_data(data_bytes).decode_input(data_bytes)

    def decode_call(self, data_bytes: bytes) -> DecodedFragment:
        """Decodes the call data (including the selector) of one of the methods."""
        return self._method_for_data(data_bytes).decode_call(data_bytes)


class MultiEvent(Overloaded[Event]):
    """Several events with the same name but different fields."""

    _kind = "event"

    def __call__(self, *args: Any, **kwargs: Any) -> EventFilter:
        """
        Creates an event filter using the first declared event
        whose fields accept the given values.
        """
        for event in self._fragments:
            if event.fields.accepts_topics(*args, **kwargs):
                return event(*args, **kwargs)
        raise NoMatchingOverload(
            "Could not find a suitable overloaded event for the given arguments; "
            f"candidates: {self._candidates()}"
        )

    def _event_for_topics(self, topics: Sequence[bytes | LogTopic]) -> Event:
        event = self._by_selector.get(bytes(topics[0])) if topics else None
        if event is None:
            raise NoMatchingOverload(
                f"The log entry does not belong to any of the events `{self._name}`; "
                f"candidates: {self._candidates()}"
            )
        return event

    def decode_log_entry(self, topics: Sequence[bytes | LogTopic], data: bytes) -> FieldValues:
        """Decodes the log entry of one of the events, choosing it by the first topic."""
        return self._event_for_topics(topics).decode_log_entry(topics, data)

    def decode_log(self, topics: Sequence[bytes | LogTopic], data: bytes) -> DecodedFragment:
        """Decodes the log entry of one of the events, choosing it by the first topic."""
        return self._event_for_topics(topics).decode_log(topics, data)


class MultiError(Overloaded[Error]):
    """Several custom errors with the same name but different fields."""

    _kind = "error"

    def decode(self, data_bytes: bytes) -> tuple[Error, FieldValues]:
        """
        Decodes the error data (including the selector) of one of the errors.
        Returns the matching error and the decoded fields.
        """
        error = self._by_selector.get(data_bytes[:SELECTOR_LENGTH])
        if error is None:
            raise NoMatchingOverload(
                f"The selector 0x{data_bytes[:SELECTOR_LENGTH].hex()} does not belong "
                f"to any of the errors `{self._name}`; candidates: {self._candidates()}"
            )
        return error, error.decode_fields(data_bytes[SELECTOR_LENGTH:])
