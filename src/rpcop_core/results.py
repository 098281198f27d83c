from __future__ import annotations
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Tuple

from .errors import DecodeError, ProtocolError, ResultTypeMismatch
from .types import ItemConverter


def _identity(raw: Any) -> Any:
    return raw


class ResultType:
    """Type tag for decoded items.

    `parents` declares the tags this one is a subtype of. A `wildcard` tag is
    assignable from every tag and decodes any payload with its own converter.
    """

    def __init__(
        self,
        name: str,
        convert: Optional[ItemConverter] = None,
        *,
        result_class: type = object,
        parents: Iterable["ResultType"] = (),
        wildcard: bool = False,
        predicate: Optional[Callable[["ResultType", "ResultType"], bool]] = None,
    ) -> None:
        self.name = name
        self.result_class = result_class
        self.parents: Tuple[ResultType, ...] = tuple(parents)
        self.wildcard = wildcard
        self._convert = convert or _identity
        self._predicate = predicate

    def __repr__(self) -> str:
        return f"ResultType({self.name!r})"

    def ancestors(self) -> Iterator["ResultType"]:
        for parent in self.parents:
            yield parent
            yield from parent.ancestors()

    def is_assignable_from(self, other: "ResultType") -> bool:
        if self._predicate is not None:
            return self._predicate(self, other)
        if self.wildcard or other is self or other.name == self.name:
            return True
        return any(a is self or a.name == self.name for a in other.ancestors())

    def convert(self, raw: Any) -> Any:
        try:
            return self._convert(raw)
        except ProtocolError:
            raise
        except Exception as exc:
            raise DecodeError(self, exc) from exc


def is_assignable_from(expected: ResultType, actual: ResultType) -> bool:
    return expected.is_assignable_from(actual)


class ResultTypeResolver:
    """Maps server-side discriminators to registered result types."""

    def __init__(self, types: Iterable[ResultType] = ()) -> None:
        self._by_tag: Dict[Any, ResultType] = {}
        for t in types:
            self.register(t)

    def register(self, result_type: ResultType, *tags: Any) -> ResultType:
        for tag in (result_type.name, *tags):
            self._by_tag[tag] = result_type
        return result_type

    def lookup(self, tag: Any) -> ResultType:
        if isinstance(tag, ResultType):
            return tag
        try:
            return self._by_tag[tag]
        except KeyError:
            raise ProtocolError(f"unknown result type {tag!r}") from None

    def resolve(self, expected: ResultType, tag: Any = None) -> ResultType:
        """Result type to decode with, given the batch's discriminator.

        A wildcard expectation decodes everything as itself. Without a
        discriminator, or when it names the expected type, the expected type
        is taken at its word.
        """
        if expected.wildcard:
            return expected
        if tag is None or tag is expected or tag == expected.name:
            return expected
        actual = self.lookup(tag)
        if not expected.is_assignable_from(actual):
            raise ResultTypeMismatch(expected, actual)
        return actual
