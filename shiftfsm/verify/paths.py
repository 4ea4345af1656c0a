"""
Path Enumeration
================

Simple paths (no repeated status) through a transition graph, starting at
the insert status. Together the paths touch every edge reachable from the
insert status at least once; they are not every possible walk.
"""

from ..status import status_key
from ..state.graph import StateNode, TransitionGraph


def build_paths(graph: TransitionGraph) -> list[list[StateNode]]:
    """
    Enumerate simple paths from the insert status.

    A path ends where a status is terminal or where a successor cannot be
    followed without repeating a status (a cycle or self-loop) or is not
    declared at all.
    """
    remaining = dict(graph.nodes)
    return _paths_from(remaining, status_key(graph.insert_status))


def _paths_from(remaining: dict[int, StateNode], key: int) -> list[list[StateNode]]:
    here = remaining[key]
    has_end = here.is_terminal

    # Break cycles: a status cannot reappear below itself.
    del remaining[key]
    paths = []
    for next_key in here.next:
        if next_key not in remaining:
            has_end = True
            continue
        for path in _paths_from(remaining, next_key):
            paths.append([here] + path)
    remaining[key] = here

    if has_end:
        paths.append([here])
    return paths
