import pytest

import sample_services
from scopebind import Lifetime, ServiceDeclaration, declaration_of, discover, service


def test_service_decorator_defaults_to_lazy_self_keyed():
    @service()
    class Clock: ...

    declaration = declaration_of(Clock)
    assert declaration.key is Clock
    assert declaration.implementation is Clock
    assert declaration.lifetime is Lifetime.LAZY_SINGLETON
    assert declaration.lazy
    assert not declaration.host_bound


def test_service_decorator_with_key_override_and_eager():
    class Audio: ...

    @service(Audio, lazy=False)
    class Mixer(Audio): ...

    declaration = declaration_of(Mixer)
    assert declaration.key is Audio
    assert declaration.lifetime is Lifetime.SINGLETON
    assert not declaration.lazy


def test_declaration_is_not_inherited():
    @service()
    class Base: ...

    class Derived(Base): ...

    with pytest.raises(TypeError):
        declaration_of(Derived)


def test_declaration_of_accepts_declarations_and_rejects_other_objects():
    class Clock: ...

    declaration = ServiceDeclaration(Clock, Clock, Lifetime.TRANSIENT)
    assert declaration_of(declaration) is declaration

    with pytest.raises(TypeError):
        declaration_of(Clock)
    with pytest.raises(TypeError):
        declaration_of("Clock")


def test_host_bound_transient_is_rejected():
    class Camera: ...

    with pytest.raises(ValueError):
        ServiceDeclaration(Camera, Camera, Lifetime.TRANSIENT, host_bound=True)


def test_host_bound_with_factory_is_rejected():
    class Camera: ...

    with pytest.raises(ValueError):
        service(host_bound=True, factory=Camera)(Camera)


def test_implementation_must_be_a_class():
    with pytest.raises(TypeError):
        ServiceDeclaration("clock", lambda: None)


def test_discover_lists_decorated_classes_in_definition_order():
    declarations = discover(sample_services)

    assert [d.implementation for d in declarations] == [
        sample_services.DefaultMixer,
        sample_services.SceneLoader,
    ]
    assert declarations[0].key is sample_services.AudioMixer


def test_discover_ignores_imported_classes():
    # `service` and `Inject` are imported into sample_services but defined elsewhere
    assert all(d.implementation.__module__ == sample_services.__name__ for d in discover(sample_services))
