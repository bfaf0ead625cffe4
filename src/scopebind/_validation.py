"""Type checks applied to registered values and ``resolve_all`` matching."""

from __future__ import annotations

import inspect
import typing
from typing import Any, Protocol, cast, get_type_hints


_MISSING: Any = object()


def is_protocol(tp: object) -> bool:
    """Detect whether 'tp' is a typing.Protocol subclass (safe)."""
    if not inspect.isclass(tp):
        return False
    if hasattr(typing, "is_protocol"):
        # https://docs.python.org/3/library/typing.html#typing.is_protocol
        return typing.is_protocol(tp)
    return issubclass(tp, cast("type", Protocol)) and bool(getattr(tp, "_is_protocol", False))


def is_runtime_checkable(proto: type) -> bool:
    if not is_protocol(proto):
        return False

    try:
        isinstance(None, proto)
    except TypeError:
        return False
    else:
        return True


def check_value(key: Any, value: object) -> None:
    """Raise TypeError when ``value`` cannot stand in for the class ``key``.

    Non-type keys (string tokens) are never validated.
    """
    if not inspect.isclass(key):
        return

    if not is_protocol(key):
        if not isinstance(value, key):
            msg = f"Resolved instance {type(value).__name__} is not an instance of {key.__name__}"
            raise TypeError(msg)
        return

    problems = conformance_problems(key, type(value))
    if problems:
        msg = (
            f"Resolved instance {type(value).__name__} does not conform to protocol {key.__name__}: "
            f"{'; '.join(problems)}"
        )
        raise TypeError(msg)

    if is_runtime_checkable(key) and not isinstance(value, key):
        msg = f"Resolved instance {type(value).__name__} does not implement runtime protocol {key.__name__}"
        raise TypeError(msg)


def is_assignable(key: Any, base: Any) -> bool:
    """True when a binding registered under ``key`` counts as a ``base``."""
    if key is base or key == base:
        return True
    if not (inspect.isclass(key) and inspect.isclass(base)):
        return False
    if not is_protocol(base):
        return issubclass(key, base)
    return not conformance_problems(base, key)


def conformance_problems(proto: type, impl: type) -> list[str]:
    """Reasons ``impl`` does not satisfy ``proto``; empty when it does.

    Explicit subclasses always conform. Otherwise the check is structural and
    best-effort: public members must exist, methods must accept the protocol's
    required positional arguments, and class return types must be covariant.
    """
    if proto in getattr(impl, "__mro__", ()):
        return []

    problems = [f"missing {name}" for name in _annotated_members(proto) if not hasattr(impl, name)]
    for name, method in vars(proto).items():
        if name.startswith("_") or not inspect.isfunction(method):
            continue
        problems.extend(_method_problems(name, method, getattr(impl, name, _MISSING)))
    return problems


def _annotated_members(proto: type) -> list[str]:
    try:
        hints = get_type_hints(proto, include_extras=True)
    except (TypeError, NameError):
        return []
    return [name for name in hints if not name.startswith("_")]


def _method_problems(name: str, expected: Any, actual: Any) -> list[str]:
    if actual is _MISSING:
        return [f"missing {name}()"]
    if not callable(actual):
        return [f"{name} is not callable"]

    try:
        wanted = inspect.signature(expected)
        offered = inspect.signature(actual)
    except (TypeError, ValueError) as e:
        return [f"{name}(): signatures cannot be compared ({e})"]

    problems = []
    required = _positional(wanted, required_only=True)
    accepted = _positional(offered, required_only=False)
    if accepted < required:
        problems.append(f"{name}() accepts {accepted} positional argument(s), protocol passes {required}")

    if not _returns_compatible(offered.return_annotation, wanted.return_annotation):
        problems.append(
            f"{name}() returns {offered.return_annotation!r}, protocol expects {wanted.return_annotation!r}"
        )
    return problems


def _positional(sig: inspect.Signature, *, required_only: bool) -> float:
    count = 0
    for p in sig.parameters.values():
        if p.name == "self":
            continue
        if p.kind is p.VAR_POSITIONAL:
            if required_only:
                continue
            return float("inf")
        if p.kind not in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD):
            continue
        if required_only and p.default is not p.empty:
            continue
        count += 1
    return count


def _returns_compatible(offered: object, wanted: object) -> bool:
    if any(ann is inspect.Signature.empty or ann is Any for ann in (offered, wanted)):
        return True
    if offered == wanted:
        return True
    # unions, protocols, type variables and string annotations are not compared
    if isinstance(offered, type) and isinstance(wanted, type):
        return issubclass(offered, wanted)
    return False
