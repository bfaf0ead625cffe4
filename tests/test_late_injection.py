import logging

import pytest

from scopebind import Domain, DomainManager, Inject, MemberSet, ServiceDeclaration


class Clock: ...


class Bullet:
    clock: Clock = Inject()


class Pool:
    """Minimal object pool handing out reused instances."""

    def __init__(self, manager, factory):
        self._manager = manager
        self._factory = factory
        self._free = []

    def get(self):
        instance = self._free.pop() if self._free else self._factory()
        self._manager.request_injection(instance)
        return instance

    def release(self, instance):
        self._free.append(instance)


@pytest.fixture
def manager():
    manager = DomainManager()
    yield manager
    manager.reset()


@pytest.fixture
def counter():
    return {"clocks": 0}


@pytest.fixture
def counting_global(manager, counter):
    def make_clock():
        counter["clocks"] += 1
        return Clock()

    return manager.start(
        Domain("app", is_global=True, configure=lambda registry: registry.register_transient(Clock, make_clock))
    )


def test_request_injection_twice_injects_once(manager, counter, counting_global):
    bullet = Bullet()

    assert manager.request_injection(bullet)
    first = bullet.clock
    assert not manager.request_injection(bullet)

    assert counter["clocks"] == 1
    assert bullet.clock is first
    assert counting_global.is_injected(bullet)


def test_pool_reuse_does_not_inject_again(manager, counter, counting_global):
    pool = Pool(manager, Bullet)

    bullet = pool.get()
    pool.release(bullet)
    again = pool.get()

    assert again is bullet
    assert counter["clocks"] == 1


def test_swept_members_are_not_injected_again(manager, counter):
    bullet = Bullet()

    def make_clock():
        counter["clocks"] += 1
        return Clock()

    manager.start(
        Domain(
            "app",
            is_global=True,
            boundary=MemberSet([bullet]),
            configure=lambda registry: registry.register_transient(Clock, make_clock),
        )
    )

    assert counter["clocks"] == 1
    assert not manager.request_injection(bullet)
    assert counter["clocks"] == 1


def test_nearest_local_domain_containing_the_instance_wins(manager):
    global_clock, level_clock = Clock(), Clock()
    inside, outside = Bullet(), Bullet()
    boundary = MemberSet()

    manager.start(
        Domain("app", is_global=True, configure=lambda registry: registry.register_singleton(Clock, global_clock))
    )
    level = manager.start(
        Domain(
            "level",
            boundary=boundary,
            configure=lambda registry: registry.register_singleton(Clock, level_clock),
        )
    )
    boundary.add(inside)

    assert manager.find_domain(inside) is level
    assert manager.request_injection(inside)
    assert manager.request_injection(outside)

    assert inside.clock is level_clock
    assert outside.clock is global_clock


def test_most_recently_started_local_domain_is_preferred(manager):
    older_clock, newer_clock = Clock(), Clock()
    bullet = Bullet()
    older_boundary, newer_boundary = MemberSet(), MemberSet()

    manager.start(
        Domain("older", boundary=older_boundary, configure=lambda r: r.register_singleton(Clock, older_clock))
    )
    manager.start(
        Domain("newer", boundary=newer_boundary, configure=lambda r: r.register_singleton(Clock, newer_clock))
    )
    older_boundary.add(bullet)
    newer_boundary.add(bullet)

    assert manager.request_injection(bullet)
    assert bullet.clock is newer_clock


def test_no_applicable_domain_is_logged_and_skipped(manager, caplog):
    manager.start(Domain("level", boundary=MemberSet()))
    bullet = Bullet()

    with caplog.at_level(logging.WARNING, logger="scopebind._domain"):
        assert not manager.request_injection(bullet)

    assert "No active domain" in caplog.text
    assert bullet.clock is None


def test_request_injection_before_any_domain_exists(manager):
    assert not manager.request_injection(Bullet())


def test_failed_late_injection_is_recoverable(manager, caplog):
    app = manager.start(Domain("app", is_global=True))
    bullet = Bullet()

    with caplog.at_level(logging.ERROR, logger="scopebind._domain"):
        assert not manager.request_injection(bullet)
    assert "Late injection of Bullet" in caplog.text
    assert not app.is_injected(bullet)

    app.registry.register_singleton(Clock, Clock())
    assert manager.request_injection(bullet)
    assert isinstance(bullet.clock, Clock)


def test_instances_of_a_retired_domain_can_be_injected_elsewhere(manager):
    global_clock = Clock()
    bullet = Bullet()
    manager.start(
        Domain("app", is_global=True, configure=lambda registry: registry.register_singleton(Clock, global_clock))
    )
    level = manager.start(
        Domain(
            "level",
            boundary=MemberSet([bullet]),
            configure=lambda registry: registry.register_singleton(Clock, Clock()),
        )
    )
    assert bullet.clock is not global_clock

    manager.stop(level)

    assert manager.request_injection(bullet)
    assert bullet.clock is global_clock


def test_objects_without_weakref_support_are_tracked(manager, counter, counting_global):
    class Slotted:
        __slots__ = ()

    slotted = Slotted()
    assert manager.request_injection(slotted)
    assert not manager.request_injection(slotted)


def test_factory_returning_wrong_type_does_not_reach_the_caller(manager, caplog):
    class NotAClock: ...

    manager.start(Domain("app", is_global=True, configure=lambda r: r.register_lazy_singleton(Clock, NotAClock)))
    bullet = Bullet()

    with caplog.at_level(logging.ERROR, logger="scopebind._domain"):
        assert not manager.request_injection(bullet)

    assert "Late injection of Bullet" in caplog.text
    assert "TypeError" in caplog.text
    assert not manager.is_injected(bullet)


def test_host_locator_failure_does_not_reach_the_caller(manager, caplog):
    class Radar: ...

    class Turret:
        radar: Radar = Inject()

    class EmptyScene(MemberSet):
        def create(self, cls):
            msg = f"cannot spawn {cls.__name__} here"
            raise RuntimeError(msg)

    manager.start(
        Domain(
            "app",
            is_global=True,
            services=[ServiceDeclaration(Radar, Radar, host_bound=True)],
            boundary=EmptyScene(),
        )
    )
    turret = Turret()

    with caplog.at_level(logging.ERROR, logger="scopebind._domain"):
        assert not manager.request_injection(turret)

    assert "cannot spawn Radar here" in caplog.text
    assert turret.radar is None
