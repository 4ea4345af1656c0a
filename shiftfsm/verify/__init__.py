"""
Verification Module
===================

Reachability checks for transition graphs, driven against a real database
with randomly synthesized requests.
"""

from .paths import build_paths
from .synth import FIELD_GENERATORS, generator, random_insert, random_update
from .verifier import VerificationReport, verify_arc_fsm, verify_fsm

__all__ = [
    "build_paths",
    "FIELD_GENERATORS",
    "generator",
    "random_insert",
    "random_update",
    "VerificationReport",
    "verify_arc_fsm",
    "verify_fsm",
]
