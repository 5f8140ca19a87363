from __future__ import annotations

from typing import Any, List, Optional

__all__ = [
    "ConfigurationError",
    "UnknownModuleError",
    "UnknownEnvironmentError",
    "ConfigurationValidationError",
    "BackupError",
    "format_error",
]


class ConfigurationError(RuntimeError):
    """Base class for configuration store failures."""


class UnknownModuleError(ConfigurationError, KeyError):
    def __init__(self, name: str):
        super().__init__(f"Module is not registered: {name}")
        self.name = name

    def __str__(self) -> str:
        # KeyError would repr() the message.
        return str(self.args[0])


class UnknownEnvironmentError(ConfigurationError, KeyError):
    def __init__(self, name: str):
        super().__init__(f"Environment does not exist: {name}")
        self.name = name

    def __str__(self) -> str:
        return str(self.args[0])


class ConfigurationValidationError(ConfigurationError, ValueError):
    def __init__(self, module: Optional[str], issues: List[Any], message: Optional[str] = None):
        self.module = module
        self.issues = list(issues)
        if message is None:
            where = f" for module '{module}'" if module else ""
            detail = "; ".join(str(i) for i in self.issues[:5])
            more = f" (+{len(self.issues) - 5} more)" if len(self.issues) > 5 else ""
            message = f"Configuration is invalid{where}: {detail}{more}"
        super().__init__(message)


class BackupError(ConfigurationError):
    pass


def format_error(e: BaseException) -> str:
    """Short operator-facing message like 'BackupError: detail'."""
    name = e.__class__.__name__
    msg = str(e).strip()
    return f"{name}: {msg}" if msg else name
