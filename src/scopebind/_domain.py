"""Domains: bounded runtime scopes owning one registry and one injector.

A :class:`DomainManager` is the process-owned record of which domains are
active. It enforces "at most one global domain", parents local registries to
the global one, and routes late injection requests (objects created after a
domain's initial sweep, e.g. handed out by an object pool) to the nearest
domain.

Everything here assumes a single thread of control; concurrent calls from other
threads are undefined behavior.
"""

from __future__ import annotations

import functools
import logging
import weakref
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

from ._diagnostics import ResolutionDiagnostics, ResolutionStack
from ._errors import DomainError, NoApplicableDomain, describe_key
from ._injector import Injector
from ._registry import Lifetime, ServiceRegistry
from ._services import ServiceDeclaration, declaration_of


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator


logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class Boundary(Protocol):
    """The live objects belonging to a domain."""

    def members(self) -> Iterable[object]: ...

    def __contains__(self, obj: object) -> bool: ...


@runtime_checkable
class HostLocator(Protocol):
    """Finds or creates host-bound service instances inside a domain."""

    def locate(self, cls: type[T]) -> T | None: ...

    def create(self, cls: type[T]) -> T: ...


class MemberSet:
    """In-memory boundary that doubles as a host locator.

    Membership is by identity. ``create`` instantiates the class without
    arguments and adds the new object.
    """

    def __init__(self, members: Iterable[object] = ()) -> None:
        self._members: list[object] = []
        for member in members:
            self.add(member)

    def add(self, member: T) -> T:
        if member not in self:
            self._members.append(member)
        return member

    def discard(self, member: object) -> None:
        self._members = [m for m in self._members if m is not member]

    def members(self) -> list[object]:
        return list(self._members)

    def locate(self, cls: type[T]) -> T | None:
        for member in self._members:
            if isinstance(member, cls):
                return member
        return None

    def create(self, cls: type[T]) -> T:
        return self.add(cls())

    def __contains__(self, obj: object) -> bool:
        return any(m is obj for m in self._members)

    def __iter__(self) -> Iterator[object]:
        return iter(list(self._members))

    def __len__(self) -> int:
        return len(self._members)


class _IdentitySet:
    """Set of objects compared by identity that does not keep them alive.

    Objects that cannot be weakly referenced are held strongly.
    """

    def __init__(self) -> None:
        self._entries: dict[int, Any] = {}

    def add(self, obj: object) -> None:
        key = id(obj)
        entries = self._entries
        try:
            entry: Any = weakref.ref(obj, lambda _, key=key: entries.pop(key, None))
        except TypeError:
            entry = (obj,)
        entries[key] = entry

    def __contains__(self, obj: object) -> bool:
        entry = self._entries.get(id(obj))
        if entry is None:
            return False
        if isinstance(entry, tuple):
            return entry[0] is obj
        return entry() is obj

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class DomainState(Enum):
    UNINITIALIZED = "uninitialized"
    CONFIGURING = "configuring"
    ACTIVE = "active"
    RETIRED = "retired"


class Domain:
    """A bounded runtime scope with its own registry and injected-instance tracking.

    Activation (driven by :meth:`DomainManager.start`) registers the declared
    ``services``, runs :meth:`configure`, then injects eager services and every
    member of ``boundary``. Subclasses may override :meth:`configure` instead of
    passing ``configure=``.
    """

    def __init__(
        self,
        name: str,
        *,
        is_global: bool = False,
        services: Iterable[type | ServiceDeclaration] = (),
        boundary: Boundary | None = None,
        locator: HostLocator | None = None,
        configure: Callable[[ServiceRegistry], None] | None = None,
        diagnostics: bool = False,
        strict: bool = False,
    ) -> None:
        self.name = name
        self.is_global = is_global
        self._services = tuple(declaration_of(entry) for entry in services)
        self._boundary = boundary
        if locator is None and isinstance(boundary, HostLocator):
            locator = boundary
        self._locator = locator
        self._configure = configure
        self._diagnostics = diagnostics
        self._strict = strict

        self._state = DomainState.UNINITIALIZED
        self._registry: ServiceRegistry | None = None
        self._injector: Injector | None = None
        self._injected = _IdentitySet()
        # one instance per implementation class per activation
        self._shared: dict[type, object] = {}

    def __repr__(self) -> str:
        kind = "global" if self.is_global else "local"
        return f"<Domain {self.name!r} {kind} {self._state.value}>"

    @property
    def state(self) -> DomainState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is DomainState.ACTIVE

    @property
    def services(self) -> tuple[ServiceDeclaration, ...]:
        return self._services

    @property
    def boundary(self) -> Boundary | None:
        return self._boundary

    @property
    def registry(self) -> ServiceRegistry:
        if self._registry is None:
            msg = f"Domain {self.name!r} has no registry (state: {self._state.value})"
            raise DomainError(msg)
        return self._registry

    @property
    def injector(self) -> Injector:
        if self._injector is None:
            msg = f"Domain {self.name!r} has no injector (state: {self._state.value})"
            raise DomainError(msg)
        return self._injector

    def configure(self, registry: ServiceRegistry) -> None:
        """Explicit registrations; runs after auto-registration."""
        if self._configure is not None:
            self._configure(registry)

    def contains(self, instance: object) -> bool:
        return self._boundary is not None and instance in self._boundary

    def is_injected(self, instance: object) -> bool:
        return instance in self._injected

    def resolve(self, key: Any) -> Any:
        return self.registry.resolve(key)

    def inject(self, instance: T) -> T:
        """Inject ``instance`` unless this domain already did."""
        if instance in self._injected:
            return instance
        self.injector.inject(instance)
        self._injected.add(instance)
        return instance

    def _activate(self, parent: ServiceRegistry | None) -> None:
        if self._state in (DomainState.CONFIGURING, DomainState.ACTIVE):
            msg = f"Domain {self.name!r} is already {self._state.value}"
            raise DomainError(msg)

        self._state = DomainState.CONFIGURING
        self._injected.clear()
        self._shared.clear()
        observer = ResolutionDiagnostics() if self._diagnostics else ResolutionStack()
        self._registry = ServiceRegistry(parent, diagnostics=observer, strict=self._strict)
        self._injector = Injector(self._registry)

        try:
            eager = self._register_services()
            self.configure(self._registry)
            for instance in eager:
                self.inject(instance)
            self._sweep()
        except Exception:
            logger.error("Activation of domain %r failed", self.name)
            self._registry = None
            self._injector = None
            self._injected.clear()
            self._shared.clear()
            self._state = DomainState.UNINITIALIZED
            raise

        self._state = DomainState.ACTIVE

    def _retire(self) -> None:
        # registered instances are dropped, not disposed
        self._registry = None
        self._injector = None
        self._shared.clear()
        self._state = DomainState.RETIRED

    def _register_services(self) -> list[object]:
        registry = self.registry
        eager: list[object] = []

        for declaration in self._services:
            if declaration.host_bound:
                self._require_locator(declaration)

        for declaration in self._services:
            if declaration.lifetime is Lifetime.SINGLETON:
                instance = self._produce(declaration)
                registry.register_singleton(declaration.key, instance)
                eager.append(instance)
            elif declaration.lifetime is Lifetime.LAZY_SINGLETON:
                registry.register_lazy_singleton(declaration.key, functools.partial(self._provide, declaration))
            else:
                registry.register_transient(declaration.key, functools.partial(self._provide, declaration))

        if self._services:
            logger.debug("Domain %r auto-registered %d service(s)", self.name, len(self._services))
        return eager

    def _produce(self, declaration: ServiceDeclaration) -> object:
        impl = declaration.implementation
        shared = declaration.lifetime is not Lifetime.TRANSIENT
        if shared and impl in self._shared:
            return self._shared[impl]

        if declaration.host_bound:
            locator = self._require_locator(declaration)
            instance = locator.locate(impl)
            if instance is None:
                instance = locator.create(impl)
                logger.debug("Created host-bound %s in domain %r", impl.__name__, self.name)
        else:
            factory = declaration.factory if declaration.factory is not None else impl
            instance = factory()

        if shared:
            self._shared[impl] = instance
        return instance

    def _require_locator(self, declaration: ServiceDeclaration) -> HostLocator:
        if self._locator is None:
            impl = declaration.implementation
            msg = f"Host-bound service {impl.__name__} needs a host locator in domain {self.name!r}"
            raise DomainError(msg)
        return self._locator

    def _provide(self, declaration: ServiceDeclaration) -> object:
        return self.inject(self._produce(declaration))

    def _sweep(self) -> None:
        if self._boundary is None:
            return

        count = 0
        for member in list(self._boundary.members()):
            if member is self or member in self._injected:
                continue
            self.inject(member)
            count += 1
        logger.debug("Domain %r injected %d existing member(s)", self.name, count)


class DomainManager:
    """Process-owned set of active domains and the late injection entry point."""

    def __init__(self) -> None:
        self._domains: list[Domain] = []
        self._global: Domain | None = None

    @property
    def domains(self) -> tuple[Domain, ...]:
        return tuple(self._domains)

    @property
    def global_domain(self) -> Domain | None:
        return self._global

    def start(self, domain: Domain) -> Domain:
        """Activate ``domain``; any registration or sweep error propagates."""
        if self._is_active(domain):
            msg = f"Domain {domain.name!r} is already active"
            raise DomainError(msg)

        if domain.is_global:
            if self._global is not None:
                msg = (
                    f"Cannot start global domain {domain.name!r}: "
                    f"{self._global.name!r} is already the global domain"
                )
                raise DomainError(msg)
            parent = None
        else:
            parent = self._global.registry if self._global is not None else None

        domain._activate(parent)  # noqa: SLF001

        self._domains.append(domain)
        if domain.is_global:
            self._global = domain
        logger.info("Domain %r started (%s)", domain.name, "global" if domain.is_global else "local")
        return domain

    def stop(self, domain: Domain) -> None:
        if not self._is_active(domain):
            msg = f"Domain {domain.name!r} is not active"
            raise DomainError(msg)

        self._domains = [d for d in self._domains if d is not domain]
        if self._global is domain:
            self._global = None
        domain._retire()  # noqa: SLF001
        logger.info("Domain %r retired", domain.name)

    @contextmanager
    def activated(self, domain: Domain) -> Iterator[Domain]:
        self.start(domain)
        try:
            yield domain
        finally:
            if self._is_active(domain):
                self.stop(domain)

    def reset(self) -> None:
        """Retire every active domain, most recent first."""
        for domain in reversed(self._domains):
            self.stop(domain)

    def is_injected(self, instance: object) -> bool:
        return any(domain.is_injected(instance) for domain in self._domains)

    def find_domain(self, instance: object) -> Domain | None:
        """Nearest domain for ``instance``: a local domain containing it, else the global one."""
        for domain in reversed(self._domains):
            if not domain.is_global and domain.contains(instance):
                return domain
        return self._global

    def request_injection(self, instance: object) -> bool:
        """Inject an object created after the domains' initial sweep.

        Idempotent: an instance already injected by an active domain is left alone.
        Returns True when an injection happened. Any failure is logged and reported
        as False; the instance stays uninjected so a later request can retry.
        """
        if self.is_injected(instance):
            logger.debug("%s instance already injected; skipping", type(instance).__name__)
            return False

        domain = self.find_domain(instance)
        if domain is None:
            logger.warning("%s; skipping", NoApplicableDomain(instance))
            return False

        try:
            domain.inject(instance)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Late injection of %s into domain %r failed", describe_key(type(instance)), domain.name
            )
            return False
        return True

    def _is_active(self, domain: Domain) -> bool:
        return any(d is domain for d in self._domains)
