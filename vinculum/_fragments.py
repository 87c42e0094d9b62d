import inspect
from collections.abc import Iterable, Iterator, Mapping, Sequence
from collections.abc import Set as AbstractSet
from enum import Enum
from functools import cached_property
from inspect import BoundArguments
from keyword import iskeyword
from typing import Any, cast

from ._abi_types import (
    ABI_JSON,
    Type,
    decode_args,
    dispatch_parameter_types,
    encode_args,
    param_to_json,
)
from ._entities import LogTopic
from ._signatures import SELECTOR_LENGTH, event_topic, fragment_signature, function_selector

FieldsLike = Mapping[str, Type] | Sequence[Type] | Sequence[tuple[str | None, Type]]

# Topic slots available for indexed fields (topic0 holds the signature hash unless anonymous)
ANONYMOUS_EVENT_INDEXED_FIELDS = 4
EVENT_INDEXED_FIELDS = 3


class DuplicateSignature(ValueError):
    """Raised when two fragments of the same kind have identical names and parameter types."""


def _split_fields(fields: FieldsLike) -> tuple[tuple[str | None, ...], tuple[Type, ...]]:
    if isinstance(fields, Mapping):
        return tuple(fields), tuple(fields.values())
    if all(isinstance(item, Type) for item in fields):
        bare = cast("Sequence[Type]", fields)
        return (None,) * len(bare), tuple(bare)
    pairs = cast("Sequence[tuple[str | None, Type]]", fields)
    return tuple(name for name, _ in pairs), tuple(tp for _, tp in pairs)


def _python_safe_names(names: Sequence[str | None]) -> list[str]:
    # Names that are used as is; a replacement name must not clash with them.
    reserved = {name for name in names if name is not None and not iskeyword(name)}

    result = []
    suffix = 1
    for position, name in enumerate(names, start=1):
        if name is not None and not iskeyword(name):
            result.append(name)
            continue

        stem = f"_{position}" if name is None else f"{name}_"
        candidate = stem
        while candidate in reserved:
            candidate = f"{stem}_{suffix}"
            suffix += 1
        result.append(candidate)

    return result


class FieldValues:
    """
    Decoded values of a parameter list, in declaration order.

    Any of the values may lack a name, so this is not a plain ``dict``:
    the values are reachable by position, and the named ones by name or as attributes.
    """

    def __init__(self, values: Sequence[tuple[str | None, Any]]):
        by_name = {name: value for name, value in values if name is not None}
        named_count = sum(1 for name, _ in values if name is not None)
        if len(by_name) != named_count:
            raise ValueError("The values cannot have repeating names")

        self._pairs = values
        self._by_name = by_name
        self._fully_named = named_count == len(values)

    @property
    def as_dict(self) -> dict[str, Any]:
        """
        All the values keyed by name.
        Fails with ``ValueError`` if any of them is unnamed; use :py:attr:`named` then.
        """
        if not self._fully_named:
            raise ValueError(
                "This structure has some anonymous fields "
                "and therefore is not representable as a `dict`"
            )
        return self._by_name

    @property
    def named(self) -> dict[str, Any]:
        """A copy of the named values only."""
        return dict(self._by_name)

    @cached_property
    def as_tuple(self) -> tuple[Any, ...]:
        """The values in declaration order, names dropped."""
        return tuple(value for _, value in self._pairs)

    def __getitem__(self, key: str | int) -> Any:
        return self.as_tuple[key] if isinstance(key, int) else self._by_name[key]

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or name not in self._by_name:
            raise AttributeError(name)
        return self._by_name[name]

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.as_tuple)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldValues):
            return False
        return list(self._pairs) == list(other._pairs)

    def __repr__(self) -> str:
        return f"FieldValues({self._pairs!r})"


class Fields:
    """
    An ordered list of typed, possibly unnamed, parameters:
    the inputs or outputs of a method, the fields of an error or an event.
    """

    names: tuple[str | None, ...]
    """Parameter names, ``None`` for unnamed ones."""

    types: tuple[Type, ...]
    """Parameter types."""

    def __init__(self, fields: FieldsLike):
        self.names, self.types = _split_fields(fields)

    @cached_property
    def named_fields(self) -> set[str]:
        return {name for name in self.names if name is not None}

    @cached_property
    def as_signature(self) -> inspect.Signature:
        """
        A Python signature used to bind call arguments to these parameters.

        Parameter names that are Python keywords get a ``_`` appended,
        and unnamed parameters are called ``_<position>`` (1-based).
        A numeric suffix is added if a generated name collides with a declared one.
        """
        return inspect.Signature(
            parameters=[
                inspect.Parameter(name, inspect.Parameter.POSITIONAL_OR_KEYWORD)
                for name in _python_safe_names(self.names)
            ]
        )

    @cached_property
    def canonical_form(self) -> str:
        """The parenthesized, comma-separated canonical type list, e.g. ``(uint256,bool)``."""
        return "(" + ",".join(tp.canonical_form for tp in self.types) + ")"

    def accepts(self, values: Sequence[Any]) -> bool:
        """Whether ``values`` has the right length and each value fits its type."""
        if len(values) != len(self.types):
            return False
        return all(tp.accepts(value) for tp, value in zip(self.types, values, strict=True))

    def encode(self, values: Iterable[Any]) -> bytes:
        return encode_args(*zip(self.types, values, strict=True))

    def decode(self, value_bytes: bytes) -> FieldValues:
        decoded = decode_args(self.types, value_bytes)
        return FieldValues(list(zip(self.names, decoded, strict=True)))

    def to_json(self) -> ABI_JSON:
        return [param_to_json(name, tp) for name, tp in zip(self.names, self.types, strict=True)]

    def __str__(self) -> str:
        params = []
        for name, tp in zip(self.names, self.types, strict=True):
            params.append(str(tp) if name is None else f"{tp} {name}")
        return "(" + ", ".join(params) + ")"


class Either:
    """Matches any of the given values of an indexed event parameter."""

    def __init__(self, *items: Any):
        self.items = items


class EventFields(Fields):
    """Event parameters, each of them either indexed (stored in a topic) or stored in the data."""

    indexed: tuple[bool, ...]
    """Per-position indexed flags."""

    def __init__(self, fields: FieldsLike, indexed: AbstractSet[str] | Sequence[bool]):
        super().__init__(fields)

        self._binder = self.as_signature
        # Keyword-safe names, one per parameter, used as internal keys
        self._keys = tuple(self._binder.parameters)

        if isinstance(indexed, AbstractSet):
            if not set(indexed) <= self.named_fields:
                raise ValueError("All the names in `indexed` must be present in the fields list")
            flags = tuple(name in indexed for name in self.names)
        else:
            flags = tuple(indexed)
            if len(flags) != len(self.names):
                raise ValueError(
                    "If `indexed` is a sequence of booleans, "
                    "its length must match the number of fields"
                )
        self.indexed = flags

        topic_part: list[tuple[str, Type]] = []
        data_part: list[tuple[str, Type]] = []
        for key, tp, flag in zip(self._keys, self.types, flags, strict=True):
            (topic_part if flag else data_part).append((key, tp))
        self._topic_part = topic_part
        self._data_part = data_part

    @property
    def indexed_count(self) -> int:
        return len(self._topic_part)

    def accepts_topics(self, *args: Any, **kwargs: Any) -> bool:
        """Whether the filter arguments bind to the parameters and every value fits its type."""
        try:
            bound = self._binder.bind_partial(*args, **kwargs)
        except TypeError:
            return False

        types = dict(zip(self._keys, self.types, strict=True))
        for key, value in bound.arguments.items():
            candidates = value.items if isinstance(value, Either) else (value,)
            if not all(types[key].accepts(candidate) for candidate in candidates):
                return False
        return True

    def encode_to_topics(self, *args: Any, **kwargs: Any) -> tuple[None | tuple[bytes, ...], ...]:
        """
        Encodes filter values for the indexed parameters into topics, one entry per parameter.

        An omitted parameter becomes ``None`` (matches anything), an :py:class:`Either`
        becomes a tuple of alternatives. Keyword arguments use the keyword-safe names
        from :py:attr:`Fields.as_signature`.
        """
        bound = self._binder.bind_partial(*args, **kwargs).arguments

        topics: list[None | tuple[bytes, ...]] = []
        for key, tp in zip(self._keys, self.types, strict=True):
            if key not in bound:
                topics.append(None)
                continue
            value = bound[key]
            alternatives = value.items if isinstance(value, Either) else (value,)
            topics.append(tuple(tp.encode_to_topic(item) for item in alternatives))

        # Trailing wildcards match anything anyway
        while topics and topics[-1] is None:
            topics.pop()

        return tuple(topics)

    def decode_log_entry(self, topics: Sequence[bytes], data: bytes) -> FieldValues:
        """Decodes the values given the topics of the indexed fields (no topic0) and the data."""
        if len(topics) != len(self._topic_part):
            raise ValueError(
                f"The number of topics in the log entry ({len(topics)}) does not match "
                f"the number of indexed fields in the event ({len(self._topic_part)})"
            )

        values: dict[str, Any] = {
            key: tp.decode_from_topic(topic)
            for (key, tp), topic in zip(self._topic_part, topics, strict=True)
        }
        data_values = decode_args([tp for _, tp in self._data_part], data)
        values.update(zip([key for key, _ in self._data_part], data_values, strict=True))

        return FieldValues(
            [(name, values[key]) for key, name in zip(self._keys, self.names, strict=True)]
        )

    def to_json(self) -> ABI_JSON:
        return [
            {"indexed": flag, **param_to_json(name, tp)}
            for name, tp, flag in zip(self.names, self.types, self.indexed, strict=True)
        ]

    def __str__(self) -> str:
        params = []
        for name, tp, flag in zip(self.names, self.types, self.indexed, strict=True):
            words = [str(tp)]
            if flag:
                words.append("indexed")
            if name is not None:
                words.append(name)
            params.append(" ".join(words))
        return "(" + ", ".join(params) + ")"


class DecodedFragment:
    """What a piece of call data or a log entry turned out to be, with the decoded values."""

    kind: str
    """``"function"`` or ``"event"``."""

    name: str

    full_name: str
    """The name followed by the typed, named parameter list."""

    signature: str
    """The canonical signature."""

    selector: bytes
    """Function selector or event topic."""

    values: FieldValues

    def __init__(
        self,
        kind: str,
        name: str,
        full_name: str,
        signature: str,
        selector: bytes,
        values: FieldValues,
    ):
        self.kind = kind
        self.name = name
        self.full_name = full_name
        self.signature = signature
        self.selector = selector
        self.values = values

    @property
    def as_tuple(self) -> tuple[Any, ...]:
        return self.values.as_tuple

    @property
    def named(self) -> dict[str, Any]:
        return self.values.named

    def __repr__(self) -> str:
        return (
            f"DecodedFragment(kind={self.kind!r}, signature={self.signature!r}, "
            f"values={self.values!r})"
        )


class Constructor:
    """
    The constructor of a contract. Encodes and decodes the deployment arguments
    (the bytecode itself is attached by :py:class:`~vinculum.Contract`).
    """

    inputs: Fields

    payable: bool

    @classmethod
    def from_json(cls, method_entry: ABI_JSON) -> "Constructor":
        entry = cast("Mapping[str, ABI_JSON]", method_entry)

        if entry["type"] != "constructor":
            raise ValueError(
                "Constructor object must be created from a JSON entry with type='constructor'"
            )
        if "name" in entry:
            raise ValueError("Constructor's JSON entry cannot have a `name`")
        if entry.get("outputs"):
            raise ValueError("Constructor's JSON entry cannot have non-empty `outputs`")

        mutability = entry.get("stateMutability", "nonpayable")
        if mutability not in ("nonpayable", "payable"):
            raise ValueError(
                "Constructor's JSON entry state mutability must be `nonpayable` or `payable`"
            )
        return cls(
            dispatch_parameter_types(entry.get("inputs", [])), payable=mutability == "payable"
        )

    def __init__(self, inputs: FieldsLike, *, payable: bool = False):
        self.inputs = Fields(inputs)
        self.payable = payable

    def __call__(self, *args: Any, **kwargs: Any) -> "ConstructorCall":
        bound = self.inputs.as_signature.bind(*args, **kwargs)
        return ConstructorCall(self.inputs.encode(bound.args))

    def decode_arguments(self, input_bytes: bytes) -> FieldValues:
        """Decodes the arguments that follow the bytecode in the deployment data."""
        return self.inputs.decode(input_bytes)

    def to_json(self) -> ABI_JSON:
        return {
            "type": "constructor",
            "stateMutability": "payable" if self.payable else "nonpayable",
            "inputs": self.inputs.to_json(),
        }

    def __str__(self) -> str:
        return f"constructor{self.inputs} " + ("payable" if self.payable else "nonpayable")


class Mutability(Enum):
    """The ``stateMutability`` of a method."""

    PURE = "pure"
    VIEW = "view"
    NONPAYABLE = "nonpayable"
    PAYABLE = "payable"

    @classmethod
    def from_json(cls, entry: ABI_JSON) -> "Mutability":
        try:
            return cls(entry)
        except ValueError as exc:
            raise ValueError(f"Unknown mutability identifier: {entry}") from exc

    @property
    def payable(self) -> bool:
        """Whether a call can carry value."""
        return self is Mutability.PAYABLE

    @property
    def mutating(self) -> bool:
        """Whether a call can change the contract state (and so needs a transaction)."""
        return self in (Mutability.NONPAYABLE, Mutability.PAYABLE)


class Method:
    """
    A contract function.

    Calling it with Python arguments produces a :py:class:`MethodCall` with the call data.
    Arguments bind the same way as for a Python function whose parameters
    are given by :py:attr:`Fields.as_signature`.
    """

    name: str

    inputs: Fields

    outputs: Fields

    mutability: Mutability

    payable: bool

    mutating: bool

    @classmethod
    def from_json(cls, method_entry: ABI_JSON) -> "Method":
        entry = cast("Mapping[str, Any]", method_entry)

        if entry["type"] != "function":
            raise ValueError("Method object must be created from a JSON entry with type='function'")

        return cls(
            name=entry["name"],
            mutability=Mutability.from_json(entry["stateMutability"]),
            inputs=dispatch_parameter_types(entry["inputs"]),
            outputs=dispatch_parameter_types(entry["outputs"]) if "outputs" in entry else None,
        )

    def __init__(
        self,
        name: str,
        mutability: Mutability,
        inputs: FieldsLike,
        outputs: None | FieldsLike | Type = None,
    ):
        self.name = name
        self.mutability = mutability
        self.payable = mutability.payable
        self.mutating = mutability.mutating
        self.inputs = Fields(inputs)

        if outputs is None:
            self.outputs = Fields([])
        elif isinstance(outputs, Type):
            self.outputs = Fields([(None, outputs)])
        else:
            self.outputs = Fields(outputs)

    @cached_property
    def signature(self) -> str:
        """E.g. ``transfer(address,uint256)``."""
        return fragment_signature(self.name, self.inputs.types)

    @cached_property
    def full_name(self) -> str:
        return f"{self.name}{self.inputs}"

    @cached_property
    def selector(self) -> bytes:
        """The first four bytes of the signature hash."""
        return function_selector(self.signature)

    def bind(self, *args: Any, **kwargs: Any) -> BoundArguments:
        """Binds the arguments to the inputs, raising ``TypeError`` if they do not fit."""
        return self.inputs.as_signature.bind(*args, **kwargs)

    def __call__(self, *args: Any, **kwargs: Any) -> "MethodCall":
        return self.call_bound(self.bind(*args, **kwargs))

    def call_bound(self, bound_args: BoundArguments) -> "MethodCall":
        """Encodes the arguments returned earlier by :py:meth:`bind`."""
        return MethodCall(self, self.selector + self.inputs.encode(bound_args.args))

    def decode_input(self, data_bytes: bytes) -> FieldValues:
        """Decodes the arguments from call data that starts with this method's selector."""
        if data_bytes[:SELECTOR_LENGTH] != self.selector:
            raise ValueError("This call data belongs to a different method")
        return self.inputs.decode(data_bytes[SELECTOR_LENGTH:])

    def decode_call(self, data_bytes: bytes) -> DecodedFragment:
        return DecodedFragment(
            kind="function",
            name=self.name,
            full_name=self.full_name,
            signature=self.signature,
            selector=self.selector,
            values=self.decode_input(data_bytes),
        )

    def decode_output(self, output_bytes: bytes) -> Any:
        """
        Decodes the returned data.

        The result shape depends on the outputs: a single output gives the bare value,
        several unnamed ones give a tuple, and otherwise a :py:class:`FieldValues`.
        """
        results = self.outputs.decode(output_bytes)
        names = self.outputs.names

        if len(names) == 1:
            return results[0]
        if any(name is not None for name in names):
            return results
        return results.as_tuple

    def to_json(self) -> ABI_JSON:
        return {
            "type": "function",
            "name": self.name,
            "stateMutability": self.mutability.value,
            "inputs": self.inputs.to_json(),
            "outputs": self.outputs.to_json(),
        }

    def __str__(self) -> str:
        text = f"function {self.name}{self.inputs} {self.mutability.value}"
        if self.outputs.names:
            text += f" returns {self.outputs}"
        return text


class MethodCall:
    """Encoded call data for a particular method."""

    data_bytes: bytes
    """Selector followed by the encoded arguments."""

    method: Method

    def __init__(self, method: Method, data_bytes: bytes):
        self.method = method
        self.data_bytes = data_bytes

    def decode_output(self, output_bytes: bytes) -> Any:
        """Same as :py:meth:`Method.decode_output` of the method that produced this call."""
        return self.method.decode_output(output_bytes)


class ConstructorCall:
    """Encoded constructor arguments, without the bytecode."""

    input_bytes: bytes

    def __init__(self, input_bytes: bytes):
        self.input_bytes = input_bytes


class Event:
    """
    A contract event.

    Calling it with values of the indexed fields produces an :py:class:`EventFilter`.
    """

    name: str

    fields: EventFields

    anonymous: bool
    """Anonymous events do not store their signature hash in topic0."""

    @classmethod
    def from_json(cls, event_entry: ABI_JSON) -> "Event":
        entry = cast("Mapping[str, Any]", event_entry)

        if entry["type"] != "event":
            raise ValueError("Event object must be created from a JSON entry with type='event'")

        return cls(
            name=entry["name"],
            fields=dispatch_parameter_types(entry["inputs"]),
            indexed=[param.get("indexed", False) for param in entry["inputs"]],
            anonymous=entry.get("anonymous", False),
        )

    def __init__(
        self,
        name: str,
        fields: Mapping[str, Type] | Sequence[tuple[str | None, Type]],
        indexed: AbstractSet[str] | Sequence[bool],
        *,
        anonymous: bool = False,
    ):
        self.name = name
        self.fields = EventFields(fields, indexed)
        self.anonymous = anonymous

        limit = ANONYMOUS_EVENT_INDEXED_FIELDS if anonymous else EVENT_INDEXED_FIELDS
        if self.fields.indexed_count > limit:
            kind = "Anonymous" if anonymous else "Non-anonymous"
            raise ValueError(f"{kind} events can have at most {limit} indexed fields")

    @cached_property
    def signature(self) -> str:
        return fragment_signature(self.name, self.fields.types)

    @cached_property
    def full_name(self) -> str:
        return f"{self.name}{self.fields}"

    @cached_property
    def topic(self) -> bytes:
        """The full 32-byte signature hash, stored in topic0 of non-anonymous events."""
        return event_topic(self.signature)

    @property
    def selector(self) -> bytes:
        """An alias of :py:attr:`topic`."""
        return self.topic

    def __call__(self, *args: Any, **kwargs: Any) -> "EventFilter":
        """
        Builds a topic filter.

        Parameters left out match any value; wrap several values in :py:class:`Either`
        to match any one of them.
        """
        prefix: list[None | tuple[LogTopic, ...]] = (
            [] if self.anonymous else [(LogTopic(self.topic),)]
        )
        rest = [
            None if topic is None else tuple(LogTopic(item) for item in topic)
            for topic in self.fields.encode_to_topics(*args, **kwargs)
        ]
        return EventFilter(tuple(prefix + rest))

    def decode_log_entry(self, topics: Sequence[bytes | LogTopic], data: bytes) -> FieldValues:
        """
        Decodes a log entry with all its topics (topic0 included for non-anonymous events).

        Indexed fields of dynamic types are only stored as hashes,
        so their values are ``None``.
        """
        raw = [bytes(topic) for topic in topics]
        if not self.anonymous:
            if not raw or raw[0] != self.topic:
                raise ValueError("This log entry belongs to a different event")
            raw = raw[1:]
        return self.fields.decode_log_entry(raw, data)

    def decode_log(self, topics: Sequence[bytes | LogTopic], data: bytes) -> DecodedFragment:
        return DecodedFragment(
            kind="event",
            name=self.name,
            full_name=self.full_name,
            signature=self.signature,
            selector=self.topic,
            values=self.decode_log_entry(topics, data),
        )

    def to_json(self) -> ABI_JSON:
        return {
            "type": "event",
            "name": self.name,
            "inputs": self.fields.to_json(),
            "anonymous": self.anonymous,
        }

    def __str__(self) -> str:
        suffix = " anonymous" if self.anonymous else ""
        return f"event {self.name}{self.fields}{suffix}"


class EventFilter:
    """Topic filter for one event, not tied to a contract address."""

    topics: tuple[None | tuple[LogTopic, ...], ...]
    """Per position: ``None`` for a wildcard, or the accepted topics."""

    def __init__(self, topics: tuple[None | tuple[LogTopic, ...], ...]):
        self.topics = topics


class Error:
    """A custom error declared in the contract ABI."""

    name: str

    fields: Fields

    @classmethod
    def from_json(cls, error_entry: ABI_JSON) -> "Error":
        entry = cast("Mapping[str, Any]", error_entry)

        if entry["type"] != "error":
            raise ValueError("Error object must be created from a JSON entry with type='error'")

        return cls(name=entry["name"], fields=dispatch_parameter_types(entry["inputs"]))

    def __init__(self, name: str, fields: FieldsLike):
        self.name = name
        self.fields = Fields(fields)

    @cached_property
    def signature(self) -> str:
        return fragment_signature(self.name, self.fields.types)

    @cached_property
    def full_name(self) -> str:
        return f"{self.name}{self.fields}"

    @cached_property
    def selector(self) -> bytes:
        """Computed the same way as a method selector."""
        return function_selector(self.signature)

    def decode_fields(self, data_bytes: bytes) -> FieldValues:
        """Decodes the error values from revert data with the selector stripped."""
        return self.fields.decode(data_bytes)

    def to_json(self) -> ABI_JSON:
        return {"type": "error", "name": self.name, "inputs": self.fields.to_json()}

    def __str__(self) -> str:
        return f"error {self.name}{self.fields}"
