"""AitherZero configuration core (layered, file-backed, environment-aware).

Core design goals:
- One shared store file per user, JSON or YAML
- Per-module schemas with shallow validation
- Named environments overlaying module settings
- Hot reload, backups with retention, import/export
- Change notification through an in-process event bus
"""

from .core import ConfigurationCore
from .errors import (
    BackupError,
    ConfigurationError,
    ConfigurationValidationError,
    UnknownEnvironmentError,
    UnknownModuleError,
)
from .events import ConfigurationEvent, EventBus
from .merge import compare_configuration, merge_configuration
from .schema import SchemaDefinitionError, ValidationIssue, validate_configuration

__version__ = "0.1.0"

__all__ = [
    "ConfigurationCore",
    "ConfigurationError",
    "ConfigurationValidationError",
    "UnknownModuleError",
    "UnknownEnvironmentError",
    "BackupError",
    "SchemaDefinitionError",
    "ValidationIssue",
    "ConfigurationEvent",
    "EventBus",
    "merge_configuration",
    "compare_configuration",
    "validate_configuration",
]
