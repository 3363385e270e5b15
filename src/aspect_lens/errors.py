"""
Custom exception hierarchy for Aspect Lens.

Provides structured error handling with error codes, recoverability hints,
and rich context for debugging.

Only structural problems are raised through this hierarchy. Failures of
individual taggers, scorers and aspects are logged and isolated by the engines
that run them, and store query failures propagate to the caller unchanged.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for categorizing failures."""

    # Registry errors
    REGISTRY_DUPLICATE_ASPECT = "registry_duplicate_aspect"
    REGISTRY_DUPLICATE_SCORER = "registry_duplicate_scorer"

    # Tree errors
    TREE_INVALID = "tree_invalid"

    # Store errors
    STORE_CORRUPTED = "store_corrupted"
    STORE_WRITE_FAILED = "store_write_failed"

    # Plugin errors
    PLUGIN_LOAD_FAILED = "plugin_load_failed"

    # Configuration errors
    CONFIG_INVALID = "config_invalid"
    CONFIG_FILE_NOT_FOUND = "config_file_not_found"

    # General errors
    UNKNOWN = "unknown"


@dataclass
class AspectLensError(Exception):
    """
    Base exception for all Aspect Lens errors.

    Attributes:
        message: Human-readable error message
        code: Error code for programmatic handling
        recoverable: Whether the operation can be retried
        context: Additional context for debugging
        suggestion: Suggested action to resolve the error
    """

    message: str
    code: ErrorCode = ErrorCode.UNKNOWN
    recoverable: bool = False
    context: dict[str, Any] = field(default_factory=dict)
    suggestion: str | None = None

    def __str__(self) -> str:
        parts = [f"[{self.code.value}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code.value!r}, "
            f"recoverable={self.recoverable}"
            f")"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "code": self.code.value,
            "recoverable": self.recoverable,
            "context": self.context,
            "suggestion": self.suggestion,
        }


@dataclass
class RegistryError(AspectLensError):
    """Aspect or scorer registration failed."""

    aspect_name: str | None = None
    scorer_name: str | None = None

    def __post_init__(self) -> None:
        if self.aspect_name:
            self.context["aspect_name"] = self.aspect_name
        if self.scorer_name:
            self.context["scorer_name"] = self.scorer_name


@dataclass
class TreeValidationError(AspectLensError):
    """A sunburst tree does not have the required shape."""

    node_path: list[str] | None = None
    node: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.node_path is not None:
            self.context["node_path"] = self.node_path
        if self.node is not None:
            self.context["node"] = self.node


@dataclass
class StoreError(AspectLensError):
    """The fingerprint store file could not be read or written."""

    store_path: str | None = None
    line_number: int | None = None

    def __post_init__(self) -> None:
        if self.store_path:
            self.context["store_path"] = self.store_path
        if self.line_number:
            self.context["line_number"] = self.line_number


@dataclass
class PluginError(AspectLensError):
    """A plugin file could not be loaded."""

    plugin_path: str | None = None

    def __post_init__(self) -> None:
        if self.plugin_path:
            self.context["plugin_path"] = self.plugin_path


@dataclass
class ConfigError(AspectLensError):
    """Configuration error."""

    config_path: str | None = None
    key: str | None = None

    def __post_init__(self) -> None:
        if self.config_path:
            self.context["config_path"] = self.config_path
        if self.key:
            self.context["key"] = self.key


# Factory functions for common errors
def duplicate_aspect(name: str) -> RegistryError:
    """Create error for an aspect name registered twice."""
    return RegistryError(
        message=f"Aspect already registered: {name}",
        code=ErrorCode.REGISTRY_DUPLICATE_ASPECT,
        aspect_name=name,
        suggestion="Fingerprint kind names must be unique; rename one of the aspects.",
    )


def invalid_tree(reason: str, node_path: list[str], node: dict[str, Any]) -> TreeValidationError:
    """Create error for a structurally invalid sunburst tree."""
    location = "/".join(node_path) or "<root>"
    return TreeValidationError(
        message=f"Invalid sunburst tree at {location}: {reason}",
        code=ErrorCode.TREE_INVALID,
        node_path=node_path,
        node=node,
    )


def store_corrupted(path: str, line_number: int, reason: str) -> StoreError:
    """Create error for an unreadable store record."""
    return StoreError(
        message=f"Corrupted store record at line {line_number}: {reason}",
        code=ErrorCode.STORE_CORRUPTED,
        store_path=path,
        line_number=line_number,
        suggestion="Remove or repair the offending line, or re-run the analysis.",
    )


def store_write_failed(path: str, reason: str) -> StoreError:
    """Create error for a store file that cannot be written."""
    return StoreError(
        message=f"Failed to write store: {reason}",
        code=ErrorCode.STORE_WRITE_FAILED,
        recoverable=True,
        store_path=path,
        suggestion="Check that the store directory exists and is writable.",
    )


def duplicate_scorer(name: str, kind: str) -> RegistryError:
    """Create error for a scorer name registered twice."""
    return RegistryError(
        message=f"{kind.capitalize()} scorer already registered: {name}",
        code=ErrorCode.REGISTRY_DUPLICATE_SCORER,
        scorer_name=name,
        suggestion="Scorer names key weights and score breakdowns; rename one of the scorers.",
    )


def plugin_load_failed(path: str, reason: str) -> PluginError:
    """Create error for a plugin file that cannot be imported."""
    return PluginError(
        message=f"Failed to load plugin {path}: {reason}",
        code=ErrorCode.PLUGIN_LOAD_FAILED,
        plugin_path=path,
        suggestion="Check that the plugin file imports cleanly.",
    )


def invalid_config(path: str, reason: str) -> ConfigError:
    """Create error for invalid configuration."""
    return ConfigError(
        message=f"Invalid configuration: {reason}",
        code=ErrorCode.CONFIG_INVALID,
        config_path=path,
        suggestion="Check the configuration file format and values.",
    )
