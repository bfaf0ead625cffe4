from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar, overload

from ._diagnostics import ResolutionStack
from ._errors import CircularDependency, DuplicateRegistration, ResolutionError, ServiceNotRegistered, describe_key
from ._validation import check_value, is_assignable


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    Token = type[Any] | str

T = TypeVar("T")

_MISSING: Any = object()


class Lifetime(Enum):
    SINGLETON = "singleton"
    LAZY_SINGLETON = "lazy_singleton"
    TRANSIENT = "transient"


@dataclass
class ServiceDescriptor:
    key: Any
    lifetime: Lifetime
    factory: Callable[[], object] | None = None
    instance: object | None = None
    resolved: bool = False  # instance holds the cached value (which may be None)


class ServiceRegistry:
    """Service key -> instance map with an optional parent.

    - eager singletons, lazy singletons (factory runs once) and transients
    - local bindings shadow the parent's; a miss falls through to the parent chain
    - a key re-registered locally is overwritten with a warning (an error when strict)

    All calls are expected from a single thread; there is no locking.
    """

    def __init__(
        self,
        parent: ServiceRegistry | None = None,
        *,
        diagnostics: ResolutionStack | None = None,
        strict: bool = False,
    ) -> None:
        self._parent = parent
        self._descriptors: dict[Any, ServiceDescriptor] = {}
        self._diagnostics = diagnostics if diagnostics is not None else ResolutionStack()
        self._strict = strict
        # keys whose factory is currently running
        self._pending: list[Any] = []

    @property
    def parent(self) -> ServiceRegistry | None:
        return self._parent

    @property
    def diagnostics(self) -> ResolutionStack:
        return self._diagnostics

    def create_child(self, *, diagnostics: ResolutionStack | None = None) -> ServiceRegistry:
        """Create a registry that prefers its own bindings and falls back to this one."""
        return ServiceRegistry(self, diagnostics=diagnostics, strict=self._strict)

    def register_singleton(self, key: Token, value: object) -> None:
        """Bind ``key`` to a pre-built value."""
        check_value(key, value)
        self._bind(ServiceDescriptor(key=key, lifetime=Lifetime.SINGLETON, instance=value, resolved=True))

    def register_lazy_singleton(self, key: Token, factory: Callable[[], object]) -> None:
        """Bind ``key`` to a factory invoked on first resolve; the result is cached."""
        self._bind(ServiceDescriptor(key=key, lifetime=Lifetime.LAZY_SINGLETON, factory=factory))

    def register_transient(self, key: Token, factory: Callable[[], object]) -> None:
        """Bind ``key`` to a factory invoked on every resolve."""
        self._bind(ServiceDescriptor(key=key, lifetime=Lifetime.TRANSIENT, factory=factory))

    def _bind(self, descriptor: ServiceDescriptor) -> None:
        key = descriptor.key
        if key in self._descriptors:
            self._diagnostics.record_duplicate(key)
            if self._strict:
                raise DuplicateRegistration(key)
            logger.warning("Service %s is already registered; overwriting previous binding", describe_key(key))

        self._descriptors[key] = descriptor
        logger.debug("Registered service: %s with lifetime: %s", describe_key(key), descriptor.lifetime.value)

    def unregister(self, key: Token) -> bool:
        """Remove a local binding. Ancestors are left untouched."""
        return self._descriptors.pop(key, None) is not None

    @overload
    def resolve(self, key: type[T]) -> T: ...

    @overload
    def resolve(self, key: str) -> object: ...

    def resolve(self, key: Token) -> object:
        """Resolve ``key`` here or in the nearest ancestor that binds it.

        Raises ServiceNotRegistered when no registry in the chain has the key.
        """
        value = self.try_resolve(key, _MISSING)
        if value is _MISSING:
            raise ServiceNotRegistered(key)
        return value

    def try_resolve(self, key: Token, default: Any = None) -> Any:
        """Like resolve, but return ``default`` when the key is bound nowhere in the chain.

        Failures while producing a bound value (cycles, missing dependencies) still raise.
        """
        found = self._lookup(key)
        if found is None:
            return default

        owner, descriptor = found
        if self._diagnostics.enabled:
            self._diagnostics.record_dependency(key)
        return owner._produce(descriptor)

    def is_registered(self, key: Token) -> bool:
        return self._lookup(key) is not None

    def resolve_all(self, base: Any) -> list[Any]:
        """Every local binding whose key is assignable to ``base``, in registration order.

        Ancestors are not searched.
        """
        matches = [d for key, d in list(self._descriptors.items()) if is_assignable(key, base)]
        values = []
        for descriptor in matches:
            if self._diagnostics.enabled:
                self._diagnostics.record_dependency(descriptor.key)
            values.append(self._produce(descriptor))
        return values

    def keys(self) -> list[Any]:
        return list(self._descriptors)

    def __contains__(self, key: object) -> bool:
        return key in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._descriptors))

    def _lookup(self, key: Any) -> tuple[ServiceRegistry, ServiceDescriptor] | None:
        registry: ServiceRegistry | None = self
        while registry is not None:
            descriptor = registry._descriptors.get(key)
            if descriptor is not None:
                return registry, descriptor
            registry = registry._parent
        return None

    def _produce(self, descriptor: ServiceDescriptor) -> object:
        if descriptor.resolved:
            return descriptor.instance

        key = descriptor.key
        if key in self._pending:
            start = self._pending.index(key)
            raise CircularDependency([*self._pending[start:], key])

        if descriptor.factory is None:
            msg = f"Service {describe_key(key)} has neither an instance nor a factory"
            raise ResolutionError(msg)

        self._pending.append(key)
        try:
            if self._diagnostics.enabled:
                started = time.perf_counter()
                instance = descriptor.factory()
                self._diagnostics.record_initialization(key, time.perf_counter() - started)
            else:
                instance = descriptor.factory()
        finally:
            self._pending.pop()

        check_value(key, instance)

        if descriptor.lifetime is Lifetime.LAZY_SINGLETON:
            descriptor.instance = instance
            descriptor.resolved = True
            logger.debug("Lazy singleton created and cached: %s", describe_key(key))
        return instance
