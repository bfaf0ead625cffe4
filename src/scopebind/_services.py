"""Service declarations consumed by domain auto-registration."""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from ._registry import Lifetime


if TYPE_CHECKING:
    from collections.abc import Callable
    from types import ModuleType


C = TypeVar("C", bound=type)

_DECLARATION = "__scopebind_service__"


@dataclass(frozen=True)
class ServiceDeclaration:
    """One manifest entry: ``key`` is served by ``implementation`` with ``lifetime``.

    ``factory`` builds the instance (defaults to calling ``implementation``).
    A ``host_bound`` service is looked up among the live members of the domain
    before one is created through the domain's host locator.
    """

    key: Any
    implementation: type
    lifetime: Lifetime = Lifetime.LAZY_SINGLETON
    host_bound: bool = False
    factory: Callable[[], object] | None = None

    def __post_init__(self) -> None:
        if not inspect.isclass(self.implementation):
            msg = f"Service implementation must be a class, got {self.implementation!r}"
            raise TypeError(msg)
        if self.host_bound and self.lifetime is Lifetime.TRANSIENT:
            msg = f"Host-bound service {self.implementation.__name__} cannot be transient"
            raise ValueError(msg)
        if self.host_bound and self.factory is not None:
            msg = f"Host-bound service {self.implementation.__name__} is created by the host locator, not a factory"
            raise ValueError(msg)

    @property
    def lazy(self) -> bool:
        return self.lifetime is not Lifetime.SINGLETON


def service(
    key: Any = None,
    *,
    lazy: bool = True,
    host_bound: bool = False,
    factory: Callable[[], object] | None = None,
) -> Callable[[C], C]:
    """Class decorator marking an auto-registrable service.

    Example:
      @service(AudioMixer, lazy=False)
      class DefaultMixer(AudioMixer): ...

    """

    def decorate(cls: C) -> C:
        declaration = ServiceDeclaration(
            key=cls if key is None else key,
            implementation=cls,
            lifetime=Lifetime.LAZY_SINGLETON if lazy else Lifetime.SINGLETON,
            host_bound=host_bound,
            factory=factory,
        )
        # stored in the class __dict__ so subclasses do not inherit it
        setattr(cls, _DECLARATION, declaration)
        return cls

    return decorate


def declaration_of(entry: object) -> ServiceDeclaration:
    if isinstance(entry, ServiceDeclaration):
        return entry
    if inspect.isclass(entry):
        declaration = entry.__dict__.get(_DECLARATION)
        if declaration is not None:
            return declaration
        msg = f"{entry.__name__} is not decorated with @service"
        raise TypeError(msg)
    msg = f"Expected a @service class or a ServiceDeclaration, got {entry!r}"
    raise TypeError(msg)


def discover(*modules: ModuleType) -> list[ServiceDeclaration]:
    """Declarations of the @service classes defined in ``modules``, in definition order."""
    found: list[ServiceDeclaration] = []
    for module in modules:
        for obj in vars(module).values():
            if not inspect.isclass(obj) or obj.__module__ != module.__name__:
                continue
            declaration = obj.__dict__.get(_DECLARATION)
            if declaration is not None and declaration not in found:
                found.append(declaration)
    return found
