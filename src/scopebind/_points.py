"""Injection point declarations and the per-class injection plan.

Classes declare what they need with class-level markers::

    class Hud:
        clock: Clock = Inject()
        audio: AudioMixer | None = Inject()          # optional: X | None
        panels: list[Panel] = InjectAll()

        @inject
        def attach(self, input: InputMap, theme: Theme | None = None) -> None: ...

The markers are collected once per class into a tuple of injection points
(:func:`injection_plan`); injecting an instance only walks that tuple.
"""

from __future__ import annotations

import collections.abc
import copy
import inspect
import logging
import types
import typing
import weakref
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union, get_args, get_origin, get_type_hints, overload

from ._errors import MissingDependency, describe_key


if TYPE_CHECKING:
    from collections.abc import Callable

    from ._registry import ServiceRegistry

    F = typing.TypeVar("F", bound=Callable[..., Any])


logger = logging.getLogger(__name__)

_MARKER = "__scopebind_inject__"
_MISSING: Any = object()

_LIST_ORIGINS = (
    list,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Iterable,
    collections.abc.Collection,
)


class Inject:
    """Marks a class attribute as a single injection point.

    The key defaults to the attribute annotation. ``X | None`` annotations make the
    point optional. Until filled (or when an optional point finds nothing) the
    attribute reads as ``default``; each instance gets its own shallow copy of it.
    """

    def __init__(self, key: Any = None, *, optional: bool = False, default: Any = None) -> None:
        self.key = key
        self.optional = optional
        self.default = default
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: object, owner: type | None = None) -> Any:
        if instance is None:
            return self
        # injected values live in the instance __dict__ and shadow this descriptor
        if self.default is None:
            return None
        value = copy.copy(self.default)
        if hasattr(instance, "__dict__"):
            vars(instance)[self.name] = value
        return value

    def __repr__(self) -> str:
        return f"Inject({describe_key(self.key) if self.key is not None else ''})"


class InjectAll:
    """Marks a class attribute that receives every local binding of an element type."""

    def __init__(self, element: Any = None) -> None:
        self.element = element
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: object, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return None


@overload
def inject(func: F) -> F: ...


@overload
def inject(*, optional: bool = ...) -> Callable[[F], F]: ...


def inject(func: Any = None, *, optional: bool = False) -> Any:
    """Mark a method (or a property setter) for injection.

    Usage: ``@inject`` or ``@inject(optional=True)``.
    """

    def mark(f: F) -> F:
        setattr(f, _MARKER, optional)
        return f

    if func is None:
        return mark
    return mark(func)


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = get_args(annotation)
        rest = [a for a in args if a is not type(None)]
        if len(rest) == 1 and len(args) > 1:
            return rest[0], True
    return annotation, False


def _collection_shape(annotation: Any) -> tuple[type | None, Any]:
    """Return (list | tuple | None, element) for an inject-all annotation."""
    if annotation in (list, tuple):
        return annotation, None

    origin = get_origin(annotation)
    args = get_args(annotation)
    if origin in _LIST_ORIGINS:
        return list, args[0] if args else None
    if origin is tuple and len(args) == 2 and args[1] is Ellipsis:  # noqa: PLR2004
        return tuple, args[0]
    return None, None


@dataclass(frozen=True)
class SinglePoint:
    name: str
    key: Any
    optional: bool
    kind: str = "field"

    def inject_into(self, target: object, registry: ServiceRegistry) -> None:
        value = registry.try_resolve(self.key, _MISSING)
        if value is _MISSING:
            if self.optional:
                logger.debug(
                    "Optional %s %s.%s left unset: %s not registered",
                    self.kind,
                    type(target).__name__,
                    self.name,
                    describe_key(self.key),
                )
                return
            raise MissingDependency(type(target), self.name, self.key)
        setattr(target, self.name, value)


@dataclass(frozen=True)
class CollectionPoint:
    name: str
    element: Any
    shape: type | None
    declared: Any = None

    def inject_into(self, target: object, registry: ServiceRegistry) -> None:
        if self.shape is None:
            logger.warning(
                "[InjectAll] requires a list or tuple annotation. %s.%s is declared as %r; skipping",
                type(target).__name__,
                self.name,
                self.declared,
            )
            return
        setattr(target, self.name, self.shape(registry.resolve_all(self.element)))


@dataclass(frozen=True)
class Parameter:
    name: str
    key: Any
    optional: bool
    default: Any
    keyword_only: bool = False


@dataclass(frozen=True)
class MethodPoint:
    name: str
    parameters: tuple[Parameter, ...]

    def inject_into(self, target: object, registry: ServiceRegistry) -> None:
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        # every argument is resolved before the call
        for param in self.parameters:
            value = registry.try_resolve(param.key, _MISSING)
            if value is _MISSING:
                if not param.optional:
                    raise MissingDependency(type(target), f"{self.name}({param.name})", param.key)
                value = param.default
            if param.keyword_only:
                kwargs[param.name] = value
            else:
                args.append(value)

        getattr(target, self.name)(*args, **kwargs)


InjectionPoint = Union[SinglePoint, CollectionPoint, MethodPoint]

_plans: weakref.WeakKeyDictionary[type, tuple[InjectionPoint, ...]] = weakref.WeakKeyDictionary()


def injection_plan(cls: type) -> tuple[InjectionPoint, ...]:
    """Injection points declared by ``cls`` and its bases, computed once per class."""
    plan = _plans.get(cls)
    if plan is None:
        plan = _build_plan(cls)
        _plans[cls] = plan
    return plan


def _build_plan(cls: type) -> tuple[InjectionPoint, ...]:
    hints: dict[str, Any] | None = None
    points: list[InjectionPoint] = []
    seen: set[str] = set()

    for klass in cls.__mro__:
        if klass is object:
            continue
        for name, attr in vars(klass).items():
            if name in seen:
                continue
            seen.add(name)

            if isinstance(attr, (Inject, InjectAll)) and hints is None:
                # evaluated on the first field marker only
                hints = _safe_type_hints(cls, owner=cls)

            if isinstance(attr, Inject):
                points.append(_single_point(cls, name, attr, hints or {}))
            elif isinstance(attr, InjectAll):
                points.append(_collection_point(cls, name, attr, hints or {}))
            elif isinstance(attr, property) and hasattr(attr.fset, _MARKER):
                points.append(_property_point(cls, name, attr))
            elif inspect.isfunction(attr) and hasattr(attr, _MARKER):
                points.append(_method_point(cls, name, attr))

    if points:
        logger.debug("Built injection plan for %s: %d point(s)", cls.__name__, len(points))
    return tuple(points)


def _safe_type_hints(obj: Any, owner: type) -> dict[str, Any]:
    try:
        return get_type_hints(obj)
    except TypeError:
        return {}
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s type hints; using raw annotations", exc.name, owner.__qualname__)
        if inspect.isclass(obj):
            raw: dict[str, Any] = {}
            for klass in reversed(obj.__mro__):
                raw.update(getattr(klass, "__annotations__", {}))
            return raw
        return dict(getattr(obj, "__annotations__", {}))


def _single_point(cls: type, name: str, marker: Inject, hints: dict[str, Any]) -> SinglePoint:
    optional = marker.optional
    key = marker.key
    if key is None:
        if name not in hints:
            msg = f"Inject on {cls.__name__}.{name} needs an explicit key or a type annotation"
            raise TypeError(msg)
        key, implied = _unwrap_optional(hints[name])
        optional = optional or implied
    return SinglePoint(name=name, key=key, optional=optional)


def _collection_point(cls: type, name: str, marker: InjectAll, hints: dict[str, Any]) -> CollectionPoint:
    if name not in hints:
        if marker.element is None:
            msg = f"InjectAll on {cls.__name__}.{name} needs an element type or a list[...] annotation"
            raise TypeError(msg)
        return CollectionPoint(name=name, element=marker.element, shape=list)

    declared = hints[name]
    shape, element = _collection_shape(declared)
    if shape is None:
        return CollectionPoint(name=name, element=marker.element, shape=None, declared=declared)

    element = marker.element if marker.element is not None else element
    if element is None:
        msg = f"InjectAll on {cls.__name__}.{name} needs an element type"
        raise TypeError(msg)
    return CollectionPoint(name=name, element=element, shape=shape, declared=declared)


def _property_point(cls: type, name: str, prop: property) -> SinglePoint | CollectionPoint:
    setter = prop.fset
    params = list(inspect.signature(setter).parameters.values())[1:]  # type: ignore[arg-type]
    if len(params) != 1:
        msg = f"Injected property {cls.__name__}.{name} setter must take exactly one value"
        raise TypeError(msg)

    hints = _safe_type_hints(setter, owner=cls)
    if params[0].name not in hints:
        msg = f"Injected property {cls.__name__}.{name} setter needs a type annotation"
        raise TypeError(msg)

    declared = hints[params[0].name]
    shape, element = _collection_shape(declared)
    if shape is not None:
        if element is None:
            msg = f"Injected property {cls.__name__}.{name} needs an element type in its collection annotation"
            raise TypeError(msg)
        return CollectionPoint(name=name, element=element, shape=shape, declared=declared)

    key, implied = _unwrap_optional(declared)
    return SinglePoint(name=name, key=key, optional=getattr(setter, _MARKER) or implied, kind="property")


def _method_point(cls: type, name: str, func: Callable[..., Any]) -> MethodPoint:
    all_optional = getattr(func, _MARKER)
    hints = _safe_type_hints(func, owner=cls)
    parameters = []

    for p in list(inspect.signature(func).parameters.values())[1:]:
        if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
            continue
        if p.name not in hints:
            msg = f"Parameter '{p.name}' of injected method {cls.__name__}.{name}() has no type annotation"
            raise TypeError(msg)

        key, implied = _unwrap_optional(hints[p.name])
        has_default = p.default is not inspect.Parameter.empty
        parameters.append(
            Parameter(
                name=p.name,
                key=key,
                optional=all_optional or implied or has_default,
                default=p.default if has_default else None,
                keyword_only=p.kind is p.KEYWORD_ONLY,
            )
        )

    return MethodPoint(name=name, parameters=tuple(parameters))
