"""
Reachability Verifier
=====================

Drives an executor through every simple path of its graph against a real
database, using randomly synthesized requests:

1. Enumerate paths from the insert status (see paths.build_paths)
2. For each path, insert a row and walk it through every status on the path
3. Check that every declared status was visited

Meant for test suites:

    def test_order_fsm(engine):
        verify_fsm(engine, order_fsm, seed=1)
"""

import logging
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import Engine

from ..errors import VerificationError
from ..status import Status, status_key, status_name
from ..state.arc import Arc, ArcFSM, ArcInsert
from ..state.fsm import FSM
from ..state.graph import describe
from .paths import build_paths
from .synth import random_insert, random_update


logger = logging.getLogger(__name__)


@dataclass
class VerificationReport:
    """Results from a verification run"""
    paths: list = field(default_factory=list)
    visited: list = field(default_factory=list)
    identifiers: list = field(default_factory=list)

    def visit(self, status: Status) -> None:
        if all(status_key(s) != status_key(status) for s in self.visited):
            self.visited.append(status)

    def visited_keys(self) -> set[int]:
        return {status_key(s) for s in self.visited}


def verify_fsm(engine: Engine, fsm: FSM, *, seed: Optional[int] = None) -> VerificationReport:
    """
    Verify that every status of the executor's graph is reachable.

    Args:
        engine: Database with the entity and events tables created.
        fsm: Executor under test.
        seed: Seed for field synthesis; None draws a fresh one.

    Raises:
        VerificationError: A path failed, or a declared status was never
            visited ("status not reachable").
    """
    graph = fsm.graph
    rng = random.Random(seed)
    report = VerificationReport()

    for line in describe(graph):
        logger.debug("Graph: %s", line)

    for i, path in enumerate(build_paths(graph)):
        name = f"{i}_from_{status_name(path[0].status)}_to_{status_name(path[-1].status)}_len_{len(path)}"
        logger.info("Verifying path %s", name, extra={"path": name})

        try:
            identifier = fsm.insert(engine, random_insert(path[0].request_type, rng))
            report.visit(path[0].status)
            for prev, node in zip(path, path[1:]):
                request = random_update(node.request_type, identifier, rng)
                fsm.update(engine, prev.status, node.status, request)
                report.visit(node.status)
        except Exception as e:
            raise VerificationError(f"error in path {name}", path=name) from e

        report.paths.append([node.status for node in path])
        report.identifiers.append(identifier)

    missing = [s for s in graph.statuses() if status_key(s) not in report.visited_keys()]
    if missing:
        raise VerificationError(
            "status not reachable",
            statuses=[status_name(s) for s in missing],
        )
    return report


def verify_arc_fsm(engine: Engine, fsm: ArcFSM, *, seed: Optional[int] = None) -> VerificationReport:
    """
    Exercise every declared insert and every declared arc at least once.

    Each arc is driven on a fresh row that is first walked to the arc's
    from status along declared arcs.
    """
    graph = fsm.graph
    rng = random.Random(seed)
    report = VerificationReport()

    for declared in graph.inserts:
        name = f"insert_{status_name(declared.status)}"
        logger.info("Verifying insert %s", name, extra={"path": name})
        try:
            identifier = fsm.insert(engine, declared.status, random_insert(declared.request_type, rng))
        except Exception as e:
            raise VerificationError(f"error in path {name}", path=name) from e
        report.visit(declared.status)
        report.paths.append([declared.status])
        report.identifiers.append(identifier)

    routes = _shortest_routes(graph.inserts, list(graph.all_arcs()))
    for i, arc in enumerate(graph.all_arcs()):
        route = routes.get(status_key(arc.from_status))
        if route is None:
            raise VerificationError("status not reachable", statuses=[status_name(arc.from_status)])

        start, walk = route
        steps = walk + [arc]
        name = f"{i}_from_{status_name(start.status)}_to_{status_name(arc.to_status)}_len_{len(steps) + 1}"
        logger.info("Verifying path %s", name, extra={"path": name})

        try:
            identifier = fsm.insert(engine, start.status, random_insert(start.request_type, rng))
            report.visit(start.status)
            for step in steps:
                request = random_update(step.request_type, identifier, rng)
                fsm.update(engine, step.from_status, step.to_status, request)
                report.visit(step.to_status)
        except Exception as e:
            raise VerificationError(f"error in path {name}", path=name) from e

        report.paths.append([start.status] + [step.to_status for step in steps])
        report.identifiers.append(identifier)

    missing = [s for s in graph.statuses() if status_key(s) not in report.visited_keys()]
    if missing:
        raise VerificationError(
            "status not reachable",
            statuses=[status_name(s) for s in missing],
        )
    return report


def _shortest_routes(inserts: tuple[ArcInsert, ...], arcs: list[Arc]) -> dict[int, tuple[ArcInsert, list[Arc]]]:
    """Breadth-first routes from any insert status to every reachable status"""
    routes: dict[int, tuple[ArcInsert, list[Arc]]] = {}
    queue: deque[int] = deque()
    for declared in inserts:
        key = status_key(declared.status)
        if key not in routes:
            routes[key] = (declared, [])
            queue.append(key)

    outgoing: dict[int, list[Arc]] = {}
    for arc in arcs:
        outgoing.setdefault(status_key(arc.from_status), []).append(arc)

    while queue:
        key = queue.popleft()
        start, walk = routes[key]
        for arc in outgoing.get(key, []):
            target = status_key(arc.to_status)
            if target not in routes:
                routes[target] = (start, walk + [arc])
                queue.append(target)
    return routes
