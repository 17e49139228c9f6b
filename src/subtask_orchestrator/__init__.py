"""Plan tasks into dependent sub-tasks and track their execution by external agents."""

from .errors import ExternalFailureError, InvalidStateError, NotFoundError, OrchestrationError
from .orchestrator.service import OrchestrationEngine, create_engine

__version__ = "0.1.0"

__all__ = [
    "ExternalFailureError",
    "InvalidStateError",
    "NotFoundError",
    "OrchestrationError",
    "OrchestrationEngine",
    "create_engine",
    "__version__",
]
