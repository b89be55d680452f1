"""EventChannel publish/subscribe tests."""

from beatfoundry.services.events import EventChannel


def test_late_subscriber_only_sees_later_events():
    """A subscriber registered between E1 and E2 receives E2 but not E1."""
    channel = EventChannel()
    early: list[dict] = []
    late: list[dict] = []

    channel.subscribe("nova", early.append)
    channel.publish("nova", {"step": "E1"})
    channel.subscribe("nova", late.append)
    channel.publish("nova", {"step": "E2"})

    assert [e["step"] for e in early] == ["E1", "E2"]
    assert [e["step"] for e in late] == ["E2"]


def test_delivery_follows_registration_order():
    channel = EventChannel()
    order: list[str] = []

    channel.subscribe("nova", lambda e: order.append("first"))
    channel.subscribe("nova", lambda e: order.append("second"))
    channel.subscribe("nova", lambda e: order.append("third"))

    assert channel.publish("nova", {"step": "dream"}) == 3
    assert order == ["first", "second", "third"]


def test_events_are_routed_by_foundry():
    channel = EventChannel()
    nova: list[dict] = []
    orion: list[dict] = []
    channel.subscribe("nova", nova.append)
    channel.subscribe("orion", orion.append)

    channel.publish("nova", {"step": "keywords"})

    assert len(nova) == 1
    assert orion == []


def test_unsubscribe_stops_delivery_and_is_idempotent():
    channel = EventChannel()
    received: list[dict] = []
    unsubscribe = channel.subscribe("nova", received.append)

    unsubscribe()
    unsubscribe()
    channel.publish("nova", {"step": "dream"})

    assert received == []
    assert channel.subscriber_count("nova") == 0


def test_same_handler_twice_needs_two_unsubscribes():
    channel = EventChannel()
    received: list[dict] = []
    first = channel.subscribe("nova", received.append)
    channel.subscribe("nova", received.append)

    first()
    channel.publish("nova", {"step": "dream"})

    assert len(received) == 1
    assert channel.subscriber_count("nova") == 1


def test_failing_handler_does_not_block_siblings():
    channel = EventChannel()
    received: list[dict] = []

    def broken(event):
        raise RuntimeError("subscriber gone")

    channel.subscribe("nova", broken)
    channel.subscribe("nova", received.append)

    delivered = channel.publish("nova", {"step": "dream"})

    assert delivered == 1
    assert received == [{"step": "dream"}]


def test_handler_may_unsubscribe_during_delivery():
    channel = EventChannel()
    received: list[dict] = []
    unsubscribe = None

    def once(event):
        received.append(event)
        unsubscribe()

    unsubscribe = channel.subscribe("nova", once)
    channel.publish("nova", {"step": "E1"})
    channel.publish("nova", {"step": "E2"})

    assert [e["step"] for e in received] == ["E1"]


def test_publish_without_subscribers():
    assert EventChannel().publish("nobody", {"step": "dream"}) == 0
