"""Hierarchical dependency injection with domain lifecycles.

This package provides a small dependency injection runtime: a registry of
services with lifetimes and parent fallback, an injector that fills declared
injection points on existing objects, and domains that own a registry for a
bounded part of a running application.

Exports:
- `ServiceRegistry`: key -> instance map (eager, lazy or transient) with an optional parent.
- `Injector`: fills `Inject` / `InjectAll` attributes and `@inject` methods of an object.
- `Domain` / `DomainManager`: per-domain registries, auto-registration of `@service`
  classes, the initial injection sweep and idempotent late injection.
- `ResolutionDiagnostics`: opt-in observer recording the dependency graph,
  duplicate registrations and factory timings.
"""

from ._diagnostics import ResolutionDiagnostics, ResolutionStack
from ._domain import Boundary, Domain, DomainManager, DomainState, HostLocator, MemberSet
from ._errors import (
    CircularDependency,
    DomainError,
    DuplicateRegistration,
    MissingDependency,
    NoApplicableDomain,
    ResolutionError,
    ServiceNotRegistered,
)
from ._injector import Injector, find_missing_dependencies
from ._points import Inject, InjectAll, inject, injection_plan
from ._registry import Lifetime, ServiceDescriptor, ServiceRegistry
from ._services import ServiceDeclaration, declaration_of, discover, service


__all__ = [
    "Boundary",
    "CircularDependency",
    "Domain",
    "DomainError",
    "DomainManager",
    "DomainState",
    "DuplicateRegistration",
    "HostLocator",
    "Inject",
    "InjectAll",
    "Injector",
    "Lifetime",
    "MemberSet",
    "MissingDependency",
    "NoApplicableDomain",
    "ResolutionDiagnostics",
    "ResolutionError",
    "ResolutionStack",
    "ServiceDeclaration",
    "ServiceDescriptor",
    "ServiceNotRegistered",
    "ServiceRegistry",
    "declaration_of",
    "discover",
    "find_missing_dependencies",
    "inject",
    "injection_plan",
    "service",
]
