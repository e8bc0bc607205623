"""
Exception hierarchy for the arbor library.

Configuration errors are raised while a Mapper is being set up and never
leave a registry half-updated. Mapping errors are raised during a single
marshal or unmarshal call and carry the document path where the walk
stopped, so the failing node can be located in large documents.
"""

from __future__ import annotations


class ArborError(Exception):
    """Base class for every error raised by arbor."""


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ArborError, ValueError):
    """Raised when a configuration call is invalid or the mapper is frozen."""


class InvalidSlotError(ConfigurationError):
    """Raised when a class does not structurally contain the requested field."""

    def __init__(self, cls: type, field_name: str, declaring_class: type | None = None):
        self.cls = cls
        self.field_name = field_name
        self.declaring_class = declaring_class
        where = f" declared in {declaring_class.__qualname__}" if declaring_class else ""
        super().__init__(
            f"{cls.__qualname__} has no field '{field_name}'{where}.\n"
            f"Only annotated attributes and __slots__ entries are mapped."
        )


class UnknownTypeError(ArborError, LookupError):
    """Raised when an external type name cannot be mapped to a Python type."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"No type is registered for the name '{name}'.\n"
            f"Register one with Mapper.alias_type('{name}', SomeClass) or use a\n"
            f"fully qualified 'module.ClassName'."
        )


# =============================================================================
# Mapping Errors
# =============================================================================


class MappingError(ArborError):
    """
    Raised when a single marshal or unmarshal call cannot continue.

    Attributes:
        path: Absolute document path of the node being processed, if known.
    """

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        if path:
            message = f"{message}\n  at {path}"
        super().__init__(message)


class AmbiguousMappingError(MappingError):
    """Raised when an element matches several implicit collections equally well."""


class CyclicReferenceError(MappingError):
    """Raised when an object graph contains a cycle and cycles are disallowed."""


class UnresolvedSlotError(MappingError):
    """Raised when an element matches neither a field nor an implicit collection."""


class InvalidReferenceError(MappingError):
    """Raised when a reference attribute points at no constructed object."""


class ConversionError(MappingError):
    """Raised when a leaf value cannot be converted to or from text."""
