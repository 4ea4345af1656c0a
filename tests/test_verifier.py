"""Tests for path enumeration, request synthesis and the reachability verifier."""

import logging
import random
from dataclasses import dataclass
from datetime import datetime

import pytest
from sqlalchemy import select

from shiftfsm import (
    FSM,
    FieldKind,
    GraphBuilder,
    InvalidTypeError,
    UpdateRequest,
    VerificationError,
    shift_field,
    verify_fsm,
)
from shiftfsm.verify import FIELD_GENERATORS, build_paths, random_insert, random_update

from tests.app import (
    BrokenMoveItem,
    CancelOrder,
    CreateItem,
    CreateOrder,
    MoveItem,
    OrderStatus,
    ShipOrder,
    Step,
    build_audited_order_fsm,
    build_cycle_fsm,
    build_document_fsm,
    build_order_fsm,
    build_orphan_fsm,
    item_events,
    orders,
)


def ordinals(paths):
    return [[node.ordinal for node in path] for path in paths]


class TestBuildPaths:

    def test_insert_only(self):
        graph = GraphBuilder().declare_insert(Step.A, CreateItem).build()
        assert ordinals(build_paths(graph)) == [[1]]

    def test_linear(self):
        graph = (
            GraphBuilder()
            .declare_insert(Step.A, CreateItem, Step.B)
            .declare_update(Step.B, MoveItem, Step.C)
            .declare_update(Step.C, MoveItem)
            .build()
        )
        assert ordinals(build_paths(graph)) == [[1, 2, 3]]

    def test_cycle_back_to_insert(self):
        graph = build_cycle_fsm().graph
        assert ordinals(build_paths(graph)) == [[1, 2, 3], [1, 2]]

    def test_self_loop(self):
        graph = (
            GraphBuilder()
            .declare_insert(Step.A, CreateItem, Step.B)
            .declare_update(Step.B, MoveItem, Step.B, Step.C)
            .declare_update(Step.C, MoveItem)
            .build()
        )
        assert ordinals(build_paths(graph)) == [[1, 2, 3], [1, 2]]

    def test_branches(self):
        graph = build_order_fsm().graph
        assert ordinals(build_paths(graph)) == [[1, 2, 3], [1, 2, 4], [1, 4]]

    def test_undeclared_target_ends_the_path(self):
        graph = GraphBuilder().declare_insert(Step.A, CreateItem, Step.B).build()
        assert ordinals(build_paths(graph)) == [[1]]

    def test_build_paths_does_not_touch_graph(self):
        graph = build_cycle_fsm().graph
        build_paths(graph)
        assert len(graph) == 3


class TestSynthesis:

    def test_every_value_kind_has_a_generator(self):
        kinds = set(FieldKind) - {FieldKind.IDENTIFIER}
        assert set(FIELD_GENERATORS) == kinds

    def test_generated_value_shapes(self):
        rng = random.Random(7)
        for _ in range(20):
            assert 0 <= FIELD_GENERATORS[FieldKind.INTEGER](rng) < 1000
            assert isinstance(FIELD_GENERATORS[FieldKind.FLOAT](rng), float)
            text = FIELD_GENERATORS[FieldKind.TEXT](rng)
            assert isinstance(text, str) and len(text) < 20
            assert isinstance(FIELD_GENERATORS[FieldKind.BOOLEAN](rng), bool)
            assert len(FIELD_GENERATORS[FieldKind.BYTES](rng)) < 64
            assert FIELD_GENERATORS[FieldKind.TIMESTAMP](rng).tzinfo is not None
            nullable = FIELD_GENERATORS[FieldKind.NULLABLE_TEXT](rng)
            assert nullable is None or isinstance(nullable, str)
            stamp = FIELD_GENERATORS[FieldKind.NULLABLE_TIMESTAMP](rng)
            assert stamp is None or isinstance(stamp, datetime)

    def test_same_seed_same_request(self):
        first = random_insert(CreateOrder, random.Random(3))
        second = random_insert(CreateOrder, random.Random(3))
        assert first == second

    def test_update_gets_identifier(self):
        request = random_update(CancelOrder, 42, random.Random(1))

        assert request.id == 42
        assert isinstance(request.reason, bytes)
        assert request.source == "test"

    def test_update_without_identifier_field(self):
        @dataclass
        class Anonymous(UpdateRequest):
            note: str = shift_field(FieldKind.TEXT)

            def update(self, conn, from_status, to_status):
                return 0

        with pytest.raises(InvalidTypeError, match="without identifier field"):
            random_update(Anonymous, 1, random.Random())

    def test_insert_with_identifier_field(self):
        with pytest.raises(InvalidTypeError, match="must not carry an identifier"):
            random_insert(ShipOrder, random.Random())

    def test_field_without_kind_or_default(self):
        @dataclass
        class Untyped(UpdateRequest):
            id: int = shift_field(FieldKind.IDENTIFIER)
            note: str = None

            def update(self, conn, from_status, to_status):
                return self.id

        @dataclass
        class Required(UpdateRequest):
            note: str
            id: int = shift_field(FieldKind.IDENTIFIER)

            def update(self, conn, from_status, to_status):
                return self.id

        assert random_update(Untyped, 1, random.Random()).note is None
        with pytest.raises(InvalidTypeError, match="neither a kind nor a default"):
            random_update(Required, 1, random.Random())

    def test_request_must_be_dataclass(self):
        class Plain(UpdateRequest):
            def update(self, conn, from_status, to_status):
                return 0

        with pytest.raises(InvalidTypeError, match="must be a dataclass"):
            random_update(Plain, 1, random.Random())


class TestVerifyFSM:

    def test_order_graph(self, engine):
        report = verify_fsm(engine, build_order_fsm(), seed=1)

        assert len(report.paths) == 3
        assert report.visited_keys() == {1, 2, 3, 4}
        assert report.identifiers == [1, 2, 3]

    def test_cycle_back_to_insert(self, engine):
        report = verify_fsm(engine, build_cycle_fsm(), seed=1)

        assert {s.ordinal for s in report.visited} == {Step.A, Step.B, Step.C}
        assert report.paths == [[Step.A, Step.B, Step.C], [Step.A, Step.B]]

    def test_orphan_status_not_reachable(self, engine):
        with pytest.raises(VerificationError, match="status not reachable") as exc_info:
            verify_fsm(engine, build_orphan_fsm(), seed=1)

        assert exc_info.value.details["statuses"] == ["D"]

    def test_update_not_reachable(self, engine):
        graph = (
            GraphBuilder()
            .declare_insert(Step.A, CreateItem, Step.B)
            .declare_update(Step.B, MoveItem)
            .declare_update(Step.C, MoveItem)
            .build()
        )

        with pytest.raises(VerificationError, match="status not reachable"):
            verify_fsm(engine, FSM(graph, item_events))

    def test_text_identifiers(self, engine):
        report = verify_fsm(engine, build_document_fsm(), seed=5)
        assert all(isinstance(i, str) for i in report.identifiers)

    def test_metadata_and_validation_graph(self, engine):
        report = verify_fsm(engine, build_audited_order_fsm(), seed=2)
        assert report.visited_keys() == {1, 2}

    def test_failing_path_is_named(self, engine):
        graph = (
            GraphBuilder()
            .declare_insert(Step.A, CreateItem, Step.B)
            .declare_update(Step.B, BrokenMoveItem)
            .build()
        )

        with pytest.raises(VerificationError, match="error in path 0_from_A_to_B_len_2") as exc_info:
            verify_fsm(engine, FSM(graph, item_events))

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_paths_are_logged(self, engine, caplog):
        with caplog.at_level(logging.INFO, logger="shiftfsm.verify.verifier"):
            verify_fsm(engine, build_cycle_fsm(), seed=1)

        assert "0_from_A_to_C_len_3" in caplog.text
        assert "1_from_A_to_B_len_2" in caplog.text

    def test_statuses_are_stored(self, engine):
        verify_fsm(engine, build_order_fsm(), seed=9)

        with engine.connect() as conn:
            stored = [row.status for row in conn.execute(select(orders.c.status).order_by(orders.c.id))]
        assert stored == [OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.CANCELLED]
