import unittest
from typing import Protocol, runtime_checkable

import pytest

from scopebind import ServiceRegistry
from scopebind._validation import conformance_problems


class TestRuntimeProtocolNonConformance(unittest.TestCase):
    registry: ServiceRegistry

    @runtime_checkable
    class RepoProtocol(Protocol):
        def get(self) -> int: ...

    class BadRepo:
        # Missing `get`, does not conform to RepoProtocol
        def other(self) -> str:
            return "nope"

    def setUp(self):
        self.registry = ServiceRegistry()

    def test_resolve_raises_type_error_when_factory_returns_non_conforming_instance(self):
        self.registry.register_lazy_singleton(self.RepoProtocol, self.BadRepo)
        # factory path does not raise at register time, but fails at resolution.
        with pytest.raises(TypeError):
            self.registry.resolve(self.RepoProtocol)

    def test_register_singleton_raises_type_error_for_non_conforming_instance(self):
        with pytest.raises(TypeError):
            self.registry.register_singleton(self.RepoProtocol, self.BadRepo())


class TestRuntimeProtocolConformance(unittest.TestCase):
    registry: ServiceRegistry

    @runtime_checkable
    class RepoProtocol(Protocol):
        def get(self) -> int: ...

    class GoodRepo:
        def get(self) -> int:
            return 42

    def setUp(self):
        self.registry = ServiceRegistry()

    def test_resolve_succeeds_when_factory_returns_conforming_instance(self):
        self.registry.register_transient(self.RepoProtocol, self.GoodRepo)

        repo = self.registry.resolve(self.RepoProtocol)

        assert isinstance(repo, self.GoodRepo)
        assert repo.get() == 42

    def test_register_singleton_succeeds_for_conforming_instance(self):
        repo = self.GoodRepo()

        self.registry.register_singleton(self.RepoProtocol, repo)
        resolved = self.registry.resolve(self.RepoProtocol)

        assert resolved is repo
        assert resolved.get() == 42


class TestRuntimeProtocolSignatureNonConformance(unittest.TestCase):
    registry: ServiceRegistry

    @runtime_checkable
    class RepoProtocol(Protocol):
        def get(self, key: str) -> int: ...

    def setUp(self):
        self.registry = ServiceRegistry()

    def test_register_singleton_raises_type_error_for_method_with_wrong_arity(self):
        class GetNoArgs:
            # Wrong arity: missing an argument
            def get(self) -> int:
                return 1

        with pytest.raises(TypeError):
            self.registry.register_singleton(self.RepoProtocol, GetNoArgs())

    def test_register_singleton_raises_type_error_for_non_callable_attribute(self):
        class GetIsNotCallable:
            get = 123

        with pytest.raises(TypeError):
            self.registry.register_singleton(self.RepoProtocol, GetIsNotCallable())

    def test_register_singleton_raises_type_error_for_wrong_return_type(self):
        class GetReturnsWrongType:
            def get(self, key: str) -> str:
                return "not an int"

        with pytest.raises(TypeError):
            self.registry.register_singleton(self.RepoProtocol, GetReturnsWrongType())


class TestClassKeyConstraints(unittest.TestCase):
    registry: ServiceRegistry

    def setUp(self):
        self.registry = ServiceRegistry()

    def test_register_singleton_requires_instance_of_concrete_key(self):
        class Base: ...

        class NotDerived: ...

        with pytest.raises(TypeError):
            self.registry.register_singleton(Base, NotDerived())

    def test_register_singleton_accepts_subclass_instance(self):
        class Base: ...

        class Derived(Base): ...

        value = Derived()
        self.registry.register_singleton(Base, value)
        assert self.registry.resolve(Base) is value

    def test_register_any_instance_with_empty_protocol_succeeds(self):
        class EmptyProto(Protocol): ...

        class AnyClass: ...

        self.registry.register_singleton(EmptyProto, AnyClass())
        assert isinstance(self.registry.resolve(EmptyProto), AnyClass)

    def test_string_keys_are_not_validated(self):
        self.registry.register_singleton("port", 5555)
        assert self.registry.resolve("port") == 5555


class TestConformanceProblems(unittest.TestCase):
    class Repo(Protocol):
        name: str

        def get(self, key: str) -> int: ...

    def test_nominal_subclass_has_no_problems(self):
        class Sub(self.Repo):
            name = "sub"

            def get(self, key: str) -> int:
                return 0

        assert conformance_problems(self.Repo, Sub) == []

    def test_optional_and_variadic_parameters_accept_the_protocol_call(self):
        class WithDefault:
            name = "d"

            def get(self, key: str = "", extra: int = 0) -> int:
                return 0

        class Variadic:
            name = "v"

            def get(self, *args) -> int:
                return 0

        assert conformance_problems(self.Repo, WithDefault) == []
        assert conformance_problems(self.Repo, Variadic) == []

    def test_every_mismatch_is_reported(self):
        class Broken:
            def get(self) -> str:
                return ""

        problems = conformance_problems(self.Repo, Broken)

        assert problems[0] == "missing name"
        assert len(problems) == 3
        assert any("accepts 0 positional" in p for p in problems)
        assert any("returns" in p for p in problems)

    def test_error_message_lists_the_problems(self):
        @runtime_checkable
        class Closeable(Protocol):
            def close(self) -> None: ...

        class Nothing: ...

        with pytest.raises(TypeError) as ctx:
            ServiceRegistry().register_singleton(Closeable, Nothing())
        assert "missing close()" in str(ctx.value)
