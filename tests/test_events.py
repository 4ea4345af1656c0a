"""Tests for the events table, notifiers and notify buses."""

import threading
from unittest.mock import Mock, patch

import pytest
from sqlalchemy import MetaData

from shiftfsm.state import (
    EventsTable,
    IdKind,
    LocalNotifyBus,
    Notifier,
    RedisNotifyBus,
    create_events_table,
    create_notify_bus,
)

from tests.app import CreateOrder, OrderStatus, PayOrder, build_order_fsm, order_events


class TestEventsTable:

    def test_read_events_after_id_and_limit(self, engine):
        fsm = build_order_fsm()
        first = fsm.insert(engine, CreateOrder(customer="a"))
        second = fsm.insert(engine, CreateOrder(customer="b"))
        fsm.update(engine, OrderStatus.CREATED, OrderStatus.PAID, PayOrder(id=first))

        with engine.connect() as conn:
            all_events = order_events.read_events(conn)
            after_first = order_events.read_events(conn, after_id=all_events[0].id)
            limited = order_events.read_events(conn, limit=2)
            latest = order_events.latest_id(conn)

        assert [e.foreign_id for e in all_events] == [first, second, first]
        assert [e.id for e in after_first] == [e.id for e in all_events[1:]]
        assert len(limited) == 2
        assert latest == all_events[-1].id

    def test_find_events_by_type(self, engine):
        fsm = build_order_fsm()
        identifier = fsm.insert(engine, CreateOrder(customer="a"))
        fsm.update(engine, OrderStatus.CREATED, OrderStatus.PAID, PayOrder(id=identifier))

        with engine.connect() as conn:
            paid = order_events.find_events(conn, event_type=OrderStatus.PAID)
            created = order_events.find_events(conn, foreign_id=identifier, event_type=1)

        assert [e.type for e in paid] == [OrderStatus.PAID.event_type]
        assert len(created) == 1
        assert created[0].timestamp is not None

    def test_latest_id_empty(self, engine):
        with engine.connect() as conn:
            assert order_events.latest_id(conn) == 0
            assert order_events.read_events(conn) == []

    def test_text_foreign_id_column(self):
        table = EventsTable("doc_events", MetaData(), id_kind=IdKind.TEXT)

        assert table.channel == "doc_events:notify"
        assert table.table.c.foreign_id.type.length == 255

    def test_insert_returns_notifier_for_channel(self, engine):
        bus = Mock()
        events = EventsTable("audit_events", MetaData(), notify_bus=bus)
        events.table.create(engine)

        with engine.begin() as conn:
            notify = events.insert_with_metadata(conn, 7, 3, b"payload")
            bus.publish.assert_not_called()
        notify()

        bus.publish.assert_called_once_with("audit_events:notify")
        with engine.connect() as conn:
            stored = events.read_events(conn)
        assert stored[0].metadata == b"payload"
        assert stored[0].type == 3


class TestNotifier:

    def test_only_first_call_announces(self):
        announce = Mock()
        notify = Notifier(announce)

        notify()
        notify()

        announce.assert_called_once_with()
        assert notify.called

    def test_without_announce(self):
        notify = Notifier()
        notify()
        assert notify.called


class TestLocalNotifyBus:

    def test_listeners_receive_channel(self):
        bus = LocalNotifyBus()
        received = []
        unsubscribe = bus.subscribe(received.append)

        bus.publish("orders:notify")
        unsubscribe()
        bus.publish("orders:notify")

        assert received == ["orders:notify"]
        assert bus.sequence == 2

    def test_wait_times_out(self):
        bus = LocalNotifyBus()
        assert bus.wait(after=0, timeout=0.01) is False

    def test_wait_wakes_on_publish(self):
        bus = LocalNotifyBus()
        results = []
        waiter = threading.Thread(target=lambda: results.append(bus.wait(after=0, timeout=5)))

        waiter.start()
        bus.publish("orders:notify")
        waiter.join()

        assert results == [True]


class TestRedisNotifyBus:

    def test_publish(self):
        client = Mock()
        bus = RedisNotifyBus(client)

        bus.publish("orders:notify")

        client.publish.assert_called_once_with("orders:notify", "new_event")

    def test_from_url(self):
        with patch("shiftfsm.state.events.redis.from_url") as from_url:
            bus = RedisNotifyBus.from_url("redis://cache:6379/1")

        from_url.assert_called_once_with("redis://cache:6379/1")
        assert bus.redis is from_url.return_value


class TestFactories:

    def test_default_bus_is_local(self):
        assert isinstance(create_notify_bus({}), LocalNotifyBus)

    def test_redis_bus(self):
        config = {"events": {"notify": {"backend": "redis", "redis_url": "redis://cache:6379/2"}}}

        with patch("shiftfsm.state.events.redis.from_url") as from_url:
            bus = create_notify_bus(config)

        assert isinstance(bus, RedisNotifyBus)
        from_url.assert_called_once_with("redis://cache:6379/2")

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="unknown notify backend"):
            create_notify_bus({"events": {"notify": {"backend": "kafka"}}})

    def test_create_events_table(self):
        config = {"events": {"table": "shipments_events", "id_kind": "text"}}

        events = create_events_table(config, MetaData())

        assert events.name == "shipments_events"
        assert events.id_kind is IdKind.TEXT
        assert isinstance(events.notify_bus, LocalNotifyBus)
