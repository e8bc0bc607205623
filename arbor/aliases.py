"""
External names for types and fields, and default implementations.

Every node the engine writes is named either after a type (the alias of
the object's class) or after a field. Unregistered classes fall back to
their fully qualified name, which type_for_name() can import again, so an
alias is only needed to get shorter or stable names.
"""

from __future__ import annotations

import collections
import collections.abc
import datetime
import decimal
import importlib
import logging
import uuid

from arbor.config import Freezable
from arbor.errors import ConfigurationError, MappingError, UnknownTypeError

logger = logging.getLogger(__name__)

NULL_NAME = "null"

_BUILTIN_ALIASES: dict[type, str] = {
    str: "string",
    int: "int",
    float: "float",
    bool: "boolean",
    complex: "complex",
    bytes: "bytes",
    bytearray: "byte-array",
    list: "list",
    tuple: "tuple",
    set: "set",
    frozenset: "frozenset",
    dict: "map",
    collections.deque: "deque",
    collections.OrderedDict: "ordered-map",
    decimal.Decimal: "decimal",
    datetime.datetime: "datetime",
    datetime.date: "date",
    datetime.time: "time",
    uuid.UUID: "uuid",
}

_BUILTIN_DEFAULT_IMPLEMENTATIONS: dict[type, type] = {
    collections.abc.Iterable: list,
    collections.abc.Collection: list,
    collections.abc.Sequence: list,
    collections.abc.MutableSequence: list,
    collections.abc.Set: set,
    collections.abc.MutableSet: set,
    collections.abc.Mapping: dict,
    collections.abc.MutableMapping: dict,
}


def qualified_name(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


class AliasRegistry(Freezable):
    """
    Bidirectional type/field ⇄ name mapping.

    Registering an alias for a type that already has one replaces the name
    used when writing; every name ever registered stays readable.

    Example:
        >>> aliases = AliasRegistry()
        >>> aliases.alias_type("farm", Farm)
        >>> aliases.name_for_type(Farm)
        'farm'
        >>> aliases.type_for_name("farm") is Farm
        True
    """

    def __init__(self):
        self._type_to_name: dict[type, str] = dict(_BUILTIN_ALIASES)
        self._name_to_type: dict[str, type] = {name: cls for cls, name in _BUILTIN_ALIASES.items()}
        self._field_aliases: dict[tuple[type, str], str] = {}
        self._defaults: dict[type, type] = dict(_BUILTIN_DEFAULT_IMPLEMENTATIONS)

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def alias_type(self, name: str, cls: type) -> None:
        self._check_mutable(f"alias {cls.__qualname__}")
        if not isinstance(cls, type):
            raise ConfigurationError(f"Cannot alias '{name}': {cls!r} is not a class")
        if name == NULL_NAME:
            raise ConfigurationError(f"'{NULL_NAME}' is reserved for the null marker")
        logger.debug("alias %s -> %s", name, qualified_name(cls))
        self._type_to_name[cls] = name
        self._name_to_type[name] = cls

    def alias_field(self, name: str, declaring_class: type, field_name: str) -> None:
        """Set the external name of the field ``field_name`` declared by ``declaring_class``."""
        self._check_mutable(f"alias field {field_name}")
        logger.debug("alias field %s.%s -> %s", declaring_class.__qualname__, field_name, name)
        self._field_aliases[(declaring_class, field_name)] = name

    def register_default_implementation(self, concrete: type, abstract: type) -> None:
        """Instantiate ``concrete`` wherever a field is declared as ``abstract``."""
        self._check_mutable(f"register a default implementation for {abstract.__qualname__}")
        if not isinstance(concrete, type) or not isinstance(abstract, type):
            raise ConfigurationError("Default implementations must be given as classes")
        if not issubclass(concrete, abstract):
            raise ConfigurationError(
                f"{concrete.__qualname__} cannot be the default implementation of "
                f"{abstract.__qualname__}: it is not a subclass."
            )
        logger.debug("default implementation %s -> %s", abstract.__qualname__, concrete.__qualname__)
        self._defaults[abstract] = concrete

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def name_for_type(self, cls: type) -> str:
        """
        Raises:
            MappingError: If ``cls`` has no alias and is defined inside a
                function, where no qualified name can find it again.
        """
        name = self._type_to_name.get(cls)
        if name is not None:
            return name
        if "<locals>" in cls.__qualname__:
            raise MappingError(
                f"{cls.__qualname__} is defined inside a function and has no importable name.\n"
                f"Register an alias for it with Mapper.alias_type()."
            )
        return qualified_name(cls)

    def name_for_field(self, declaring_class: type, field_name: str) -> str:
        return self._field_aliases.get((declaring_class, field_name), field_name)

    def name_for_value(self, value) -> str:
        if value is None:
            return NULL_NAME
        return self.name_for_type(type(value))

    def type_for_name(self, name: str) -> type:
        """
        Resolve an external name to a class.

        Registered aliases are tried first, then the name is read as a fully
        qualified ``module.QualName`` and imported.

        Raises:
            UnknownTypeError: If neither lookup yields a class.
        """
        cls = self._name_to_type.get(name)
        if cls is not None:
            return cls
        cls = _import_qualified(name)
        if cls is None:
            raise UnknownTypeError(name)
        return cls

    def default_implementation(self, cls: type) -> type:
        return self._defaults.get(cls, cls)


def _import_qualified(name: str) -> type | None:
    parts = name.split(".")
    # Longest importable module prefix wins, the rest is the qualname
    for split in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:split])
        try:
            scope = importlib.import_module(module_name)
        except (ImportError, ValueError):
            continue
        try:
            for attr in parts[split:]:
                scope = getattr(scope, attr)
        except AttributeError:
            continue
        if isinstance(scope, type):
            return scope
    return None
