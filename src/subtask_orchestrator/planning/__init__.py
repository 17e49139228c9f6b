from .classifier import Classification, classify
from .decomposer import Decomposition, RawSubtask, decompose, parse_bullets
from .linker import link, locate
from .patterns import BUILTIN_PATTERNS, PatternRegistry, WorkflowPattern, WorkflowStep

__all__ = [
    "BUILTIN_PATTERNS",
    "Classification",
    "Decomposition",
    "PatternRegistry",
    "RawSubtask",
    "WorkflowPattern",
    "WorkflowStep",
    "classify",
    "decompose",
    "link",
    "locate",
    "parse_bullets",
]
