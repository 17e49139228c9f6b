"""Workflow pattern table: the canonical step sequences a task can be decomposed into.

A *WorkflowPattern* carries the keywords used to classify a task and the ordered
steps used to instantiate sub-tasks. The lower-cased step names of a pattern form
its *workflow chain*, which the dependency linker uses to wire sequential edges.

Patterns are kept in an ordered tuple, never looked up by dict iteration: the
first pattern in declaration order wins classification ties.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml
from loguru import logger


# ---------------------------------------------------------------------------
# Pattern definitions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WorkflowStep:
    """One canonical step of a workflow pattern."""
    name: str
    description: str = ""
    keywords: tuple[str, ...] = ()

    @property
    def chain_key(self) -> str:
        return self.name.strip().lower()

    def carried_keywords(self) -> tuple[str, ...]:
        """Keywords forwarded to the linker, always including the step's own name."""
        words = [kw.strip().lower() for kw in self.keywords if kw.strip()]
        if self.chain_key not in words:
            words.insert(0, self.chain_key)
        return tuple(words)


@dataclass(frozen=True)
class WorkflowPattern:
    """Immutable pattern: classification keywords plus canonical steps."""
    name: str
    keywords: tuple[str, ...]
    steps: tuple[WorkflowStep, ...]

    def chain(self) -> list[str]:
        return [step.chain_key for step in self.steps]


# ---------------------------------------------------------------------------
# Built-in patterns
# ---------------------------------------------------------------------------

DEVELOPMENT = WorkflowPattern(
    name="development",
    keywords=("implement", "build", "create", "add", "feature", "functionality", "integration", "system", "app", "application", "service", "api"),
    steps=(
        WorkflowStep("Analyze", "Research requirements and existing codebase", ("analyze", "research", "investigate")),
        WorkflowStep("Design", "Create architecture and design document", ("design", "plan", "architect")),
        WorkflowStep("Implement", "Build the solution according to design", ("implement", "build", "code", "develop")),
        WorkflowStep("Test", "Verify and validate the implementation", ("test", "verify", "validate")),
    ),
)

RESEARCH = WorkflowPattern(
    name="research",
    keywords=("research", "investigate", "study", "explore", "evaluate", "compare", "survey", "assessment", "analysis"),
    steps=(
        WorkflowStep("Research", "Gather information and sources", ("research", "gather", "collect")),
        WorkflowStep("Analyze", "Analyze findings and identify patterns", ("analyze", "examine", "study")),
        WorkflowStep("Summarize", "Create summary of key findings", ("summarize", "synthesize", "compile")),
        WorkflowStep("Report", "Document conclusions and recommendations", ("report", "document", "present")),
    ),
)

BUGFIX = WorkflowPattern(
    name="bugfix",
    keywords=("fix", "bug", "error", "issue", "crash", "broken", "repair", "resolve", "problem", "defect"),
    steps=(
        WorkflowStep("Reproduce", "Reproduce the issue and confirm the bug", ("reproduce", "confirm", "identify")),
        WorkflowStep("Diagnose", "Investigate root cause and analyze", ("diagnose", "investigate", "analyze")),
        WorkflowStep("Fix", "Implement the fix", ("fix", "repair", "resolve")),
        WorkflowStep("Verify", "Test the fix and ensure no regressions", ("verify", "test", "validate")),
    ),
)

DOCUMENTATION = WorkflowPattern(
    name="documentation",
    keywords=("document", "documentation", "guide", "manual", "readme", "wiki", "tutorial", "reference", "explain"),
    steps=(
        WorkflowStep("Outline", "Create structure and outline", ("outline", "structure", "plan")),
        WorkflowStep("Draft", "Write initial content", ("draft", "write", "compose")),
        WorkflowStep("Review", "Review for accuracy and clarity", ("review", "edit", "refine")),
        WorkflowStep("Publish", "Final formatting and publishing", ("publish", "finalize", "release")),
    ),
)

DATA_ANALYSIS = WorkflowPattern(
    name="data_analysis",
    keywords=("data", "analytics", "metrics", "statistics", "visualization", "chart", "report", "dashboard", "insights"),
    steps=(
        WorkflowStep("Collect", "Gather and validate data sources", ("collect", "gather", "extract")),
        WorkflowStep("Process", "Clean and transform data", ("process", "clean", "transform")),
        WorkflowStep("Analyze", "Perform analysis and find insights", ("analyze", "examine", "investigate")),
        WorkflowStep("Visualize", "Create charts and visualizations", ("visualize", "chart", "graph", "display")),
    ),
)

OPTIMIZATION = WorkflowPattern(
    name="optimization",
    keywords=("optimize", "improve", "performance", "speed", "efficiency", "refactor", "enhance", "upgrade", "tuning"),
    steps=(
        WorkflowStep("Measure", "Measure current performance and identify bottlenecks", ("measure", "benchmark", "profile")),
        WorkflowStep("Analyze", "Analyze bottlenecks and opportunities", ("analyze", "investigate", "examine")),
        WorkflowStep("Optimize", "Implement optimizations", ("optimize", "improve", "refactor")),
        WorkflowStep("Validate", "Measure improvements and validate", ("validate", "verify", "test")),
    ),
)

INTEGRATION = WorkflowPattern(
    name="integration",
    keywords=("integrate", "connect", "sync", "import", "export", "migration", "adapter", "bridge", "interface"),
    steps=(
        WorkflowStep("Plan", "Plan integration approach and requirements", ("plan", "design", "specify")),
        WorkflowStep("Connect", "Establish connection and authentication", ("connect", "authenticate", "link")),
        WorkflowStep("Configure", "Configure data mapping and flow", ("configure", "map", "setup")),
        WorkflowStep("Validate", "Test integration end-to-end", ("validate", "test", "verify")),
    ),
)


BUILTIN_PATTERNS: tuple[WorkflowPattern, ...] = (
    DEVELOPMENT,
    RESEARCH,
    BUGFIX,
    DOCUMENTATION,
    DATA_ANALYSIS,
    OPTIMIZATION,
    INTEGRATION,
)

DEFAULT_PATTERN = DEVELOPMENT.name


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class PatternRegistry:
    """Ordered registry of workflow patterns.

    Starts with the built-in patterns; custom patterns are appended in
    registration order (e.g. loaded from ``.subtask_orchestrator/patterns/``).
    Re-registering an existing name replaces it in place.
    """

    def __init__(self, patterns: Iterable[WorkflowPattern] = BUILTIN_PATTERNS) -> None:
        self._patterns: list[WorkflowPattern] = list(patterns)

    # -- query ---------------------------------------------------------------

    def patterns(self) -> tuple[WorkflowPattern, ...]:
        return tuple(self._patterns)

    def names(self) -> list[str]:
        return [p.name for p in self._patterns]

    def find(self, name: str) -> Optional[WorkflowPattern]:
        for pattern in self._patterns:
            if pattern.name == name:
                return pattern
        return None

    def get(self, name: str) -> WorkflowPattern:
        pattern = self.find(name)
        if pattern is None:
            available = ", ".join(self.names())
            raise KeyError(f"Unknown workflow pattern '{name}' (available: {available})")
        return pattern

    def chains(self) -> list[tuple[str, list[str]]]:
        return [(p.name, p.chain()) for p in self._patterns]

    # -- mutation ------------------------------------------------------------

    def register(self, pattern: WorkflowPattern) -> None:
        if not pattern.steps:
            raise ValueError(f"Workflow pattern '{pattern.name}' must define at least one step")
        for idx, existing in enumerate(self._patterns):
            if existing.name == pattern.name:
                self._patterns[idx] = pattern
                return
        self._patterns.append(pattern)

    # -- YAML loading --------------------------------------------------------

    def load_from_yaml(self, path: Path) -> None:
        """Load patterns from a YAML file or a directory of YAML files.

        Each file is a mapping with ``name``, ``keywords`` and ``steps`` (a list
        of ``{name, description, keywords}``). Files are read in sorted order.
        """
        if path.is_dir():
            for child in sorted(path.iterdir()):
                if child.suffix in (".yaml", ".yml") and child.is_file():
                    self._load_single_yaml(child)
        elif path.is_file():
            self._load_single_yaml(path)
        else:
            logger.debug("Pattern YAML path does not exist: {}", path)

    def _load_single_yaml(self, path: Path) -> None:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError):
            logger.warning("Failed to parse pattern YAML: {}", path)
            return
        pattern = pattern_from_dict(data) if isinstance(data, dict) else None
        if pattern is None:
            logger.warning("Pattern YAML is missing name or steps: {}", path)
            return
        self.register(pattern)
        logger.debug("Registered workflow pattern '{}' from {}", pattern.name, path)


def pattern_from_dict(data: dict[str, Any]) -> Optional[WorkflowPattern]:
    name = str(data.get("name") or "").strip()
    raw_steps = data.get("steps")
    if not name or not isinstance(raw_steps, list):
        return None
    steps: list[WorkflowStep] = []
    for raw in raw_steps:
        if isinstance(raw, str) and raw.strip():
            steps.append(WorkflowStep(raw.strip()))
        elif isinstance(raw, dict) and str(raw.get("name") or "").strip():
            steps.append(
                WorkflowStep(
                    name=str(raw["name"]).strip(),
                    description=str(raw.get("description") or ""),
                    keywords=tuple(str(kw).strip().lower() for kw in list(raw.get("keywords") or []) if str(kw).strip()),
                )
            )
    if not steps:
        return None
    keywords = tuple(str(kw).strip().lower() for kw in list(data.get("keywords") or []) if str(kw).strip())
    return WorkflowPattern(name=name, keywords=keywords, steps=tuple(steps))
