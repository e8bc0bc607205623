"""
Field slot resolution.

A class is mapped through the fields it declares: annotated attributes
(dataclass fields included) and unannotated __slots__ entries. A class
that declares none is mapped through whatever instance attributes each
object carries, untyped. Each declared field
is a FieldSlot identified by (declaring class, field name), collected from
the root ancestor down to the class itself, in declaration order within
each class.

Shadowing:
    Python keeps public attributes of a class and all its ancestors in one
    namespace, so a subclass re-annotating a public field only narrows its
    type; it stays one slot. Class-private names are different: ``__animals``
    declared on Farm is stored as ``_Farm__animals`` and ``__animals`` on
    Area as ``_Area__animals``. Both are mapped under the field name
    ``animals`` as two distinct slots:

        >>> class Farm:
        ...     animals: list[Animal]
        >>> class Area(Farm):
        ...     __animals: list[Animal]
        >>> [(s.declaring_class.__name__, s.name, s.is_shadowed)
        ...  for s in FieldResolver().describe(Area).slots]
        [('Farm', 'animals', True), ('Area', 'animals', False)]
"""

from __future__ import annotations

import collections.abc
import dataclasses
import functools
import inspect
import logging
import types
import typing
from dataclasses import dataclass
from typing import Any, Callable

from arbor.config import Freezable
from arbor.errors import InvalidSlotError

logger = logging.getLogger(__name__)


# =============================================================================
# Declared Type Helpers
# =============================================================================


def _unwrap_optional(hint):
    if typing.get_origin(hint) in (typing.Union, types.UnionType):
        args = [arg for arg in typing.get_args(hint) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


def erase(hint) -> type:
    """
    Reduce a type annotation to the runtime class it stands for.

    ``list[Animal]`` becomes ``list``, ``Optional[Farm]`` becomes ``Farm``,
    ``typing.Sequence[str]`` becomes ``collections.abc.Sequence``. Anything
    that is not a single class (unions, Any, unresolved strings) becomes
    ``object``.
    """
    hint = _unwrap_optional(hint)
    if hint is typing.Any:
        return object
    origin = typing.get_origin(hint)
    if isinstance(hint, type) and origin is None:
        return hint
    if origin in (typing.Union, types.UnionType):
        return object
    if isinstance(origin, type):
        return origin
    if isinstance(hint, typing.TypeVar) and isinstance(hint.__bound__, type):
        return hint.__bound__
    return object


def collection_kind(cls: type) -> str | None:
    """Return "map" or "collection" for container classes, None otherwise."""
    if not isinstance(cls, type) or issubclass(cls, (str, bytes, bytearray)):
        return None
    if issubclass(cls, collections.abc.Mapping):
        return "map"
    if issubclass(cls, collections.abc.Collection) or cls is collections.abc.Iterable:
        return "collection"
    return None


def item_type(hint) -> type | None:
    """Element class of a container annotation, or None when it is not stated."""
    hint = _unwrap_optional(hint)
    args = typing.get_args(hint)
    if not args:
        return None
    kind = collection_kind(erase(hint))
    if kind == "map":
        return erase(args[1]) if len(args) == 2 else None
    if erase(hint) is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            return erase(args[0])
        return object
    return erase(args[0])


# =============================================================================
# Slots and Descriptors
# =============================================================================


@dataclass(frozen=True, eq=False)
class FieldSlot:
    """
    One mapped field of a class hierarchy.

    Two slots are the same slot when their (declaring_class, name) match;
    the other attributes describe the slot as seen from one descriptor.

    Attributes:
        declaring_class: Class whose body declares the field.
        name: Field name, with class-private mangling removed.
        declared_type: The resolved annotation (``object`` for bare slots).
        attribute: Instance attribute holding the value.
        hides_inherited: An ancestor declares a different slot with this name.
        is_shadowed: A more-derived class declares a different slot with
            this name.
    """

    declaring_class: type
    name: str
    declared_type: Any
    attribute: str
    hides_inherited: bool = False
    is_shadowed: bool = False

    @property
    def key(self) -> tuple[type, str]:
        return (self.declaring_class, self.name)

    @property
    def kind(self) -> type:
        return erase(self.declared_type)

    @property
    def item_type(self) -> type | None:
        return item_type(self.declared_type)

    def __eq__(self, other):
        if not isinstance(other, FieldSlot):
            return NotImplemented
        return self.key == other.key

    def __hash__(self):
        return hash(self.key)

    def __repr__(self):
        return f"<FieldSlot {self.declaring_class.__qualname__}.{self.name}>"


@dataclass(frozen=True)
class ClassDescriptor:
    """A class and its ordered field slots, base class fields first."""

    cls: type
    slots: tuple[FieldSlot, ...]

    def find(self, name: str, declaring_class: type | None = None) -> FieldSlot | None:
        """
        Look up a slot by field name.

        Without ``declaring_class`` the most-derived slot of that name is
        returned, which is the one plain attribute access would see.
        """
        for slot in reversed(self.slots):
            if slot.name == name and (declaring_class is None or slot.declaring_class is declaring_class):
                return slot
        return None


def _field_name(klass: type, attribute: str) -> str:
    prefix = "_" + klass.__name__.lstrip("_") + "__"
    if attribute.startswith(prefix) and not attribute.endswith("__") and prefix != "___":
        return attribute[len(prefix):]
    return attribute


def _own_fields(klass: type) -> list[tuple[str, Any]]:
    """Annotated fields and bare __slots__ declared directly on ``klass``."""
    annotations = inspect.get_annotations(klass)
    hints = {}
    if annotations:
        try:
            hints = typing.get_type_hints(klass)
        except (NameError, TypeError):
            logger.debug("unresolved annotations on %s, using raw annotations", klass.__qualname__)
    fields = []
    for attribute, raw in annotations.items():
        hint = hints.get(attribute, raw)
        if hint is typing.ClassVar or typing.get_origin(hint) is typing.ClassVar:
            continue
        if isinstance(hint, dataclasses.InitVar):
            continue
        fields.append((attribute, hint))
    declared_slots = klass.__dict__.get("__slots__", ())
    if isinstance(declared_slots, str):
        declared_slots = (declared_slots,)
    for attribute in declared_slots:
        if attribute in ("__dict__", "__weakref__"):
            continue
        # Slot names are mangled when the class body is compiled
        if attribute.startswith("__") and not attribute.endswith("__"):
            attribute = "_" + klass.__name__.lstrip("_") + attribute
        if attribute not in annotations:
            fields.append((attribute, object))
    return fields


class FieldResolver(Freezable):
    """
    Builds and caches ClassDescriptors.

    Fields can be excluded from mapping with omit_field(); the cache is
    dropped on every configuration change, and so are the caches of every
    callback registered with on_change().

    A class that declares no field anywhere in its hierarchy is open: its
    instances are mapped by their instance attributes, see instance_slots().
    """

    def __init__(self):
        self._cache: dict[type, ClassDescriptor] = {}
        self._full: dict[type, ClassDescriptor] = {}
        self._omitted: set[tuple[type, str]] = set()
        self._listeners: list[Callable[[], None]] = []

    def on_change(self, callback: Callable[[], None]) -> None:
        """Call ``callback`` whenever the mapped slots of any class may have changed."""
        self._listeners.append(callback)

    def omit_field(self, cls: type, field_name: str, declaring_class: type | None = None) -> FieldSlot:
        """Exclude a field from marshalling and unmarshalling."""
        self._check_mutable(f"omit field {field_name}")
        slot = self.slot(cls, field_name, declaring_class)
        logger.debug("omit field %r", slot)
        self._omitted.add(slot.key)
        self._cache.clear()
        for callback in self._listeners:
            callback()
        return slot

    def describe(self, cls: type) -> ClassDescriptor:
        """Return the mapped slots of ``cls``."""
        descriptor = self._cache.get(cls)
        if descriptor is None:
            full = self._describe_all(cls)
            descriptor = ClassDescriptor(
                cls, tuple(slot for slot in full.slots if slot.key not in self._omitted)
            )
            self._cache[cls] = descriptor
        return descriptor

    def slot(self, cls: type, field_name: str, declaring_class: type | None = None) -> FieldSlot:
        """
        Return the slot ``field_name`` of ``cls``.

        Raises:
            InvalidSlotError: If ``cls`` has no such field, or none declared
                by ``declaring_class``.
        """
        found = self._describe_all(cls).find(field_name, declaring_class)
        if found is None:
            raise InvalidSlotError(cls, field_name, declaring_class)
        return found

    def is_open(self, cls: type) -> bool:
        """True when neither ``cls`` nor any ancestor declares a field."""
        return not self._describe_all(cls).slots

    def instance_slots(self, obj) -> tuple[FieldSlot, ...]:
        """One untyped slot per instance attribute of ``obj``, in assignment order."""
        cls = type(obj)
        return tuple(
            FieldSlot(cls, attribute, object, attribute) for attribute in getattr(obj, "__dict__", {})
        )

    def undeclared_attributes(self, obj) -> list[str]:
        """Instance attributes of ``obj`` that no field of its class declares."""
        cls = type(obj)
        declared = {slot.attribute for slot in self._describe_all(cls).slots}
        cached = {
            name
            for klass in cls.__mro__
            for name, value in vars(klass).items()
            if isinstance(value, functools.cached_property)
        }
        return [
            attribute
            for attribute in getattr(obj, "__dict__", {})
            if attribute not in declared and attribute not in cached
        ]

    def _describe_all(self, cls: type) -> ClassDescriptor:
        descriptor = self._full.get(cls)
        if descriptor is not None:
            return descriptor

        collected: list[FieldSlot] = []
        by_attribute: dict[str, int] = {}
        for klass in reversed(cls.__mro__):
            if klass is object:
                continue
            for attribute, hint in _own_fields(klass):
                name = _field_name(klass, attribute)
                if attribute in by_attribute:
                    # Same storage, so this only narrows the declared type
                    index = by_attribute[attribute]
                    collected[index] = dataclasses.replace(collected[index], declared_type=hint)
                    continue
                hides = any(slot.name == name for slot in collected)
                by_attribute[attribute] = len(collected)
                collected.append(FieldSlot(klass, name, hint, attribute, hides_inherited=hides))

        slots = []
        for index, slot in enumerate(collected):
            if any(later.name == slot.name for later in collected[index + 1:]):
                slot = dataclasses.replace(slot, is_shadowed=True)
            slots.append(slot)

        descriptor = ClassDescriptor(cls, tuple(slots))
        self._full[cls] = descriptor
        return descriptor
