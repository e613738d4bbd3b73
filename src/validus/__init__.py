"""validus - Declarative rule-based validation engine.

validus lets an object register rules against its properties, evaluates them
synchronously or asynchronously, and reports aggregated results to observers
as they change.
"""

__version__ = "0.1.0"
__author__ = "validus contributors"
__description__ = "Declarative rule-based validation engine"

from validus.adapter import ErrorInfoAdapter
from validus.config import ValidusConfig, load_config
from validus.engine import ALL_TARGETS, PendingEvaluation, ValidationEngine
from validus.models import RuleDescriptor, RuleResult, TargetResult, ValidationResult

__all__ = [
    "__version__",
    "__author__",
    "__description__",
    "ALL_TARGETS",
    "ErrorInfoAdapter",
    "PendingEvaluation",
    "RuleDescriptor",
    "RuleResult",
    "TargetResult",
    "ValidationEngine",
    "ValidationResult",
    "ValidusConfig",
    "load_config",
]
