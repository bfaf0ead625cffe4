from __future__ import annotations

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Sequence


def describe_key(key: Any) -> str:
    """Human readable name of a service key (class name, or repr for tokens)."""
    return getattr(key, "__name__", None) or repr(key)


class ResolutionError(RuntimeError):
    pass


class ServiceNotRegistered(ResolutionError, LookupError):
    def __init__(self, key: Any) -> None:
        self.key = key
        super().__init__(f"Service {describe_key(key)} is not registered.")


class MissingDependency(ResolutionError):
    """A required injection point could not be filled."""

    def __init__(self, target_type: type, slot: str, key: Any) -> None:
        self.target_type = target_type
        self.slot = slot
        self.key = key
        super().__init__(
            f"Cannot resolve required service {describe_key(key)} for {target_type.__name__}.{slot}"
        )


class CircularDependency(ResolutionError):
    def __init__(self, path: Sequence[Any]) -> None:
        self.path = tuple(path)
        super().__init__(f"Circular dependency detected: {format_path(self.path)}")


class DuplicateRegistration(ResolutionError):
    def __init__(self, key: Any) -> None:
        self.key = key
        super().__init__(f"Service {describe_key(key)} is already registered.")


class NoApplicableDomain(ResolutionError):
    def __init__(self, instance: object) -> None:
        self.instance = instance
        super().__init__(f"No active domain can inject {type(instance).__name__} instance")


class DomainError(RuntimeError):
    """Domain lifecycle misuse (second global domain, double start, ...)."""


def format_path(path: Sequence[Any]) -> str:
    return " → ".join(describe_key(key) for key in path)
