"""Tests for listener registries and visibility tracking."""

from sitewarm.events import ListenerRegistry, Visibility, VisibilityMonitor


def describe_listener_registry():
    """ListenerRegistry fans values out synchronously and in order."""

    def it_notifies_in_registration_order():
        registry = ListenerRegistry()
        seen = []
        registry.add(lambda value: seen.append(("a", value)))
        registry.add(lambda value: seen.append(("b", value)))

        registry.notify(1)

        assert seen == [("a", 1), ("b", 1)]

    def it_unregisters_through_the_returned_function():
        registry = ListenerRegistry()
        seen = []
        remove = registry.add(seen.append)

        remove()
        remove()
        registry.notify(1)

        assert seen == []
        assert len(registry) == 0

    def it_tolerates_a_listener_removing_itself_mid_notify():
        registry = ListenerRegistry()
        seen = []
        removers = []

        def once(value):
            seen.append(("once", value))
            removers[0]()

        removers.append(registry.add(once))
        registry.add(lambda value: seen.append(("always", value)))

        registry.notify(1)
        registry.notify(2)

        assert seen == [("once", 1), ("always", 1), ("always", 2)]


def describe_visibility_monitor():
    """VisibilityMonitor broadcasts changes only."""

    def it_starts_visible():
        assert VisibilityMonitor().state == Visibility.VISIBLE

    def it_broadcasts_changes():
        monitor = VisibilityMonitor()
        seen = []
        monitor.add_listener(seen.append)

        monitor.set_state(Visibility.HIDDEN)
        monitor.set_state(Visibility.HIDDEN)
        monitor.set_state(Visibility.VISIBLE)

        assert seen == [Visibility.HIDDEN, Visibility.VISIBLE]
        assert monitor.state == Visibility.VISIBLE
