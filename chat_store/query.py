"""Lazy query sequences returned by repository listings."""

from typing import Callable, Generic, Iterable, Iterator, Optional, TypeVar

T = TypeVar("T")


class Query(Generic[T]):
    """A lazy, finite and restartable view over an in-memory collection.

    The source callable is invoked on every iteration, so each pass sees
    the collection as it is at that moment.
    """

    def __init__(self, source: Callable[[], Iterable[T]]) -> None:
        self._source = source

    def __iter__(self) -> Iterator[T]:
        return iter(self._source())

    def where(self, predicate: Callable[[T], bool]) -> "Query[T]":
        """Narrow the query with an additional filter."""
        source = self._source
        return Query(lambda: (item for item in source() if predicate(item)))

    def first(self) -> Optional[T]:
        return next(iter(self), None)

    def count(self) -> int:
        return sum(1 for _ in self)

    def to_list(self) -> list[T]:
        return list(self)

    def __repr__(self) -> str:
        return f"Query({self.to_list()!r})"
