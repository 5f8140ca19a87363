from __future__ import annotations

import pytest

from aither_config.errors import (
    BackupError,
    ConfigurationError,
    ConfigurationValidationError,
    UnknownEnvironmentError,
    UnknownModuleError,
    format_error,
)
from aither_config.schema import ValidationIssue


def test_unknown_errors_are_key_errors_with_plain_messages():
    with pytest.raises(KeyError):
        raise UnknownModuleError("lab")
    e = UnknownEnvironmentError("prod")
    assert isinstance(e, ConfigurationError)
    assert str(e) == "Environment does not exist: prod"
    assert e.name == "prod"


def test_validation_error_message_truncates_issues():
    issues = [ValidationIssue(f"k{i}", "bad") for i in range(7)]
    e = ConfigurationValidationError("lab", issues)
    assert isinstance(e, ValueError)
    assert e.module == "lab" and len(e.issues) == 7
    assert str(e).startswith("Configuration is invalid for module 'lab': k0: bad")
    assert str(e).endswith("(+2 more)")


def test_validation_error_custom_message():
    e = ConfigurationValidationError(None, [], "nope")
    assert str(e) == "nope"


def test_format_error():
    assert format_error(BackupError("missing file")) == "BackupError: missing file"
    assert format_error(RuntimeError()) == "RuntimeError"
