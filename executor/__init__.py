"""Container executor.

Runs short programs in seven languages inside ephemeral, resource-limited
Docker containers and streams their output line by line.
"""

__version__ = "0.1.0"

from .core.errors import ErrorKind, ExecutorError, PolicyValidationError
from .core.factory import create_orchestrator, create_runtime
from .core.models import Channel, ExecutionPolicy, ExecutionResult, HealthStatus, LanguageInfo, OutputEvent
from .languages import LanguageRegistry, LanguageSpec, default_registry, parse_dependencies
from .orchestrator import ExecutionOrchestrator, LiveExecution
from .policies import DEFAULT_POLICY, load_policy

__all__ = [
    "DEFAULT_POLICY",
    "Channel",
    "ErrorKind",
    "ExecutionOrchestrator",
    "ExecutionPolicy",
    "ExecutionResult",
    "ExecutorError",
    "HealthStatus",
    "LanguageInfo",
    "LanguageRegistry",
    "LanguageSpec",
    "LiveExecution",
    "OutputEvent",
    "PolicyValidationError",
    "create_orchestrator",
    "create_runtime",
    "default_registry",
    "parse_dependencies",
    "load_policy",
]
