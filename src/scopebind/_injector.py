from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from ._errors import describe_key
from ._points import CollectionPoint, MethodPoint, SinglePoint, injection_plan


if TYPE_CHECKING:
    from collections.abc import Iterable

    from ._registry import ServiceRegistry


logger = logging.getLogger(__name__)

T = TypeVar("T")


class Injector:
    """Fills the declared injection points of objects from one registry."""

    def __init__(self, registry: ServiceRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ServiceRegistry:
        return self._registry

    def inject(self, target: T) -> T:
        """Inject every declared point of ``target`` and return it.

        Raises MissingDependency for an unresolvable required point and
        CircularDependency when ``target``'s type is already being injected further
        up the current resolution.
        """
        cls = type(target)
        plan = injection_plan(cls)
        diagnostics = self._registry.diagnostics

        diagnostics.begin_context(cls)
        try:
            for point in plan:
                point.inject_into(target, self._registry)
        finally:
            diagnostics.end_context()

        if plan:
            logger.debug("Injected %s (%d point(s))", cls.__name__, len(plan))
        return target


def find_missing_dependencies(registry: ServiceRegistry, targets: Iterable[object]) -> list[str]:
    """Report required injection points the registry chain cannot satisfy.

    ``targets`` may hold classes or instances. Nothing is constructed, resolved or
    injected; only registrations are inspected.
    """
    problems: list[str] = []
    seen: set[type] = set()

    for target in targets:
        cls = target if inspect.isclass(target) else type(target)
        if cls in seen:
            continue
        seen.add(cls)

        for point in injection_plan(cls):
            if isinstance(point, SinglePoint):
                if not point.optional and not registry.is_registered(point.key):
                    problems.append(_report(cls, point.name, point.key))
            elif isinstance(point, MethodPoint):
                problems.extend(
                    _report(cls, f"{point.name}({param.name})", param.key)
                    for param in point.parameters
                    if not param.optional and not registry.is_registered(param.key)
                )
            elif isinstance(point, CollectionPoint) and point.shape is None:
                declared = f"{cls.__name__}.{point.name} is declared as {point.declared!r}"
                problems.append(f"Unsupported collection: {declared}")

    for problem in problems:
        logger.debug(problem)
    return problems


def _report(cls: type, slot: str, key: Any) -> str:
    return f"Missing dependency: {cls.__name__}.{slot} needs {describe_key(key)}"
