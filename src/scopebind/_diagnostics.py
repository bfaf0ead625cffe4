"""Resolution observers.

A registry always carries an observer. The default one, :class:`ResolutionStack`,
only tracks which consumers are currently being injected so cycles fail fast;
every ``record_*`` hook is a no-op and ``enabled`` is False, which lets the
registry skip timing entirely.

:class:`ResolutionDiagnostics` additionally builds the consumer -> dependency
graph, remembers duplicate registrations and factory initialization times.
It only observes: resolution results are never changed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ._errors import CircularDependency, describe_key


if TYPE_CHECKING:
    from collections.abc import Mapping


logger = logging.getLogger(__name__)


class ResolutionStack:
    enabled = False

    def __init__(self) -> None:
        self._stack: list[Any] = []

    @property
    def path(self) -> tuple[Any, ...]:
        """Consumers currently being resolved, outermost first."""
        return tuple(self._stack)

    @property
    def current(self) -> Any | None:
        return self._stack[-1] if self._stack else None

    def begin_context(self, consumer: Any) -> None:
        if consumer in self._stack:
            start = self._stack.index(consumer)
            raise CircularDependency([*self._stack[start:], consumer])
        self._stack.append(consumer)

    def end_context(self) -> None:
        if self._stack:
            self._stack.pop()

    def record_dependency(self, key: Any) -> None:
        pass

    def record_duplicate(self, key: Any) -> None:
        pass

    def record_initialization(self, key: Any, seconds: float) -> None:
        pass


class ResolutionDiagnostics(ResolutionStack):
    enabled = True

    def __init__(self) -> None:
        super().__init__()
        self._graph: dict[Any, set[Any]] = {}
        self._duplicates: list[Any] = []
        self._init_times: dict[Any, float] = {}

    def begin_context(self, consumer: Any) -> None:
        super().begin_context(consumer)
        self._graph.setdefault(consumer, set())

    def record_dependency(self, key: Any) -> None:
        consumer = self.current
        if consumer is None or consumer is key:
            return
        self._graph.setdefault(consumer, set()).add(key)

    def record_duplicate(self, key: Any) -> None:
        self._duplicates.append(key)

    def record_initialization(self, key: Any, seconds: float) -> None:
        self._init_times[key] = seconds
        logger.debug("Initialized %s in %.3f ms", describe_key(key), seconds * 1000)

    @property
    def graph(self) -> Mapping[Any, frozenset[Any]]:
        return {consumer: frozenset(deps) for consumer, deps in self._graph.items()}

    def dependencies_of(self, consumer: Any) -> frozenset[Any]:
        return frozenset(self._graph.get(consumer, ()))

    def dependents_of(self, key: Any) -> frozenset[Any]:
        return frozenset(consumer for consumer, deps in self._graph.items() if key in deps)

    @property
    def duplicates(self) -> tuple[Any, ...]:
        return tuple(self._duplicates)

    @property
    def initialization_times(self) -> Mapping[Any, float]:
        return dict(self._init_times)

    def reset(self) -> None:
        self._stack.clear()
        self._graph.clear()
        self._duplicates.clear()
        self._init_times.clear()
