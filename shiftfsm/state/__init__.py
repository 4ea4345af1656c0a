"""
State Management Module
=======================

Provides the transition engine:
1. Transition graph (declared statuses and allowed transitions)
2. Transactional executor (row mutation + event in one transaction)
3. Event log (append-only outbox with post-commit notification)
"""

from .arc import ArcBuilder, ArcFSM, ArcGraph
from .database import ShiftDatabase, create_database
from .events import (
    Event,
    EventSink,
    EventsTable,
    LocalNotifyBus,
    Notifier,
    RedisNotifyBus,
    create_events_table,
    create_notify_bus,
)
from .fsm import FSM
from .graph import GraphBuilder, GraphOptions, IdKind, StateNode, TransitionGraph

__all__ = [
    "ArcBuilder",
    "ArcFSM",
    "ArcGraph",
    "ShiftDatabase",
    "create_database",
    "Event",
    "EventSink",
    "EventsTable",
    "LocalNotifyBus",
    "Notifier",
    "RedisNotifyBus",
    "create_events_table",
    "create_notify_bus",
    "FSM",
    "GraphBuilder",
    "GraphOptions",
    "IdKind",
    "StateNode",
    "TransitionGraph",
]
