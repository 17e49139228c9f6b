from .brief import render_task_brief
from .service import OrchestrationEngine, create_engine

__all__ = ["OrchestrationEngine", "create_engine", "render_task_brief"]
