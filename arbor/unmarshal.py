"""
Document to object graph walk.

An Unmarshaller is created for one unmarshal call and reads from a
NodeReader. The type of every node comes from, in order: its ``class``
attribute, the type its position implies (declared field type, item type
of an implicit collection), or its name read as a type alias.

Children of an object node are matched in two steps:

1. Ordinary fields, by external field name. A ``defined-in`` attribute
   selects the slot declared by that class; otherwise the most-derived
   slot of that name is used.
2. Implicit collections, through ImplicitCollectionRegistry.
   resolve_for_unmarshal(). The collection is created on first use from
   the default implementation of the field's declared type.

Objects are created with ``cls.__new__`` and registered under their path
before their children are read, so references to an ancestor (cycles)
resolve to the object being built.

A class that declares no field is read the way it was written: each child
node becomes an instance attribute of that name, typed by its class
attribute.
"""

from __future__ import annotations

import inspect
import logging

from arbor.aliases import NULL_NAME, AliasRegistry
from arbor.config import MappingPolicy
from arbor.converters import ConverterRegistry
from arbor.document import CLASS_ATTRIBUTE, DEFINED_IN_ATTRIBUTE, REFERENCE_ATTRIBUTE
from arbor.errors import AmbiguousMappingError, ConversionError, MappingError, UnresolvedSlotError
from arbor.fields import ClassDescriptor, FieldResolver, FieldSlot, collection_kind
from arbor.implicit import ImplicitCollectionDeclaration, ImplicitCollectionRegistry
from arbor.references import PathTracker, ReferenceTracker
from arbor.streams import NodeReader, PathTrackingReader

logger = logging.getLogger(__name__)


def _is_immutable(impl: type) -> bool:
    return issubclass(impl, (tuple, frozenset))


def _build_immutable(impl: type, items: list):
    # typing.NamedTuple and collections.namedtuple take fields positionally
    if issubclass(impl, tuple) and hasattr(impl, "_make"):
        return impl._make(items)
    return impl(items)


def _add_item(container, item) -> None:
    if hasattr(container, "append"):
        container.append(item)
    else:
        container.add(item)


class Unmarshaller:
    """
    Reads one object graph from a NodeReader.

    Args:
        fields: Field resolver of the owning Mapper.
        implicits: Implicit collection registry of the owning Mapper.
        aliases: Alias registry of the owning Mapper.
        converters: Leaf converters of the owning Mapper.
        policy: Unknown element handling for this call.
        reader: Source of the document, positioned on the root node.
    """

    def __init__(
        self,
        fields: FieldResolver,
        implicits: ImplicitCollectionRegistry,
        aliases: AliasRegistry,
        converters: ConverterRegistry,
        policy: MappingPolicy,
        reader: NodeReader,
    ):
        self.fields = fields
        self.implicits = implicits
        self.aliases = aliases
        self.converters = converters
        self.policy = policy
        self.paths = PathTracker()
        self.reader = PathTrackingReader(reader, self.paths)
        self.references = ReferenceTracker(policy.reference_mode)

    def unmarshal(self, root_type: type | None = None):
        """
        Read the root node.

        Args:
            root_type: Class to read the root as, instead of the type its
                node name stands for. A class attribute still wins.
        """
        return self._read_element(root_type)

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def _read_element(self, fallback: type | None = None):
        """Read the current node as a value that may be the null marker."""
        if (
            self.reader.name == NULL_NAME
            and self.reader.attribute(CLASS_ATTRIBUTE) is None
            and self.reader.attribute(REFERENCE_ATTRIBUTE) is None
        ):
            return None
        return self._read_node(fallback)

    def _read_node(self, fallback: type | None):
        reference = self.reader.attribute(REFERENCE_ATTRIBUTE)
        if reference is not None:
            return self.references.resolve(reference, self.paths.path)
        return self._read_value(self._node_type(fallback))

    def _node_type(self, fallback: type | None) -> type:
        class_name = self.reader.attribute(CLASS_ATTRIBUTE)
        if class_name is not None:
            return self.aliases.type_for_name(class_name)
        if fallback is not None and fallback is not object:
            return self.aliases.default_implementation(fallback)
        return self.aliases.type_for_name(self.reader.name)

    def _read_value(self, kind: type):
        converter = self.converters.lookup(kind)
        if converter is not None:
            text = self.reader.text()
            try:
                return converter.from_text(text, kind)
            except (TypeError, ValueError, KeyError, AttributeError) as e:
                raise ConversionError(
                    f"Cannot read {text!r} as {kind.__qualname__}: {e}", self.paths.path
                ) from e
        container = collection_kind(kind)
        if container == "map":
            return self._read_entries(kind)
        if container == "collection":
            return self._read_items(kind)
        return self._read_object(kind)

    # -------------------------------------------------------------------------
    # Containers
    # -------------------------------------------------------------------------

    def _instantiate(self, kind: type):
        impl = self.aliases.default_implementation(kind)
        if inspect.isabstract(impl):
            raise MappingError(
                f"Cannot instantiate {impl.__qualname__}.\n"
                f"Register a concrete class with Mapper.add_default_implementation().",
                self.paths.path,
            )
        return impl

    def _read_items(self, kind: type):
        impl = self._instantiate(kind)
        path = self.paths.path
        if _is_immutable(impl):
            items = []
            while self.reader.next_node() is not None:
                items.append(self._read_element())
                self.reader.close_node()
            result = _build_immutable(impl, items)
            self.references.register(path, result)
            return result

        result = impl()
        self.references.register(path, result)
        while self.reader.next_node() is not None:
            _add_item(result, self._read_element())
            self.reader.close_node()
        return result

    def _read_entries(self, kind: type):
        result = self._instantiate(kind)()
        self.references.register(self.paths.path, result)
        while self.reader.next_node() is not None:
            key = value = None
            if self.reader.next_node() is not None:
                key = self._read_element()
                self.reader.close_node()
            if self.reader.next_node() is not None:
                value = self._read_element()
                self.reader.close_node()
            result[key] = value
            self.reader.close_node()
        return result

    # -------------------------------------------------------------------------
    # Objects
    # -------------------------------------------------------------------------

    def _read_object(self, cls: type):
        cls = self._instantiate(cls)
        obj = cls.__new__(cls)
        self.references.register(self.paths.path, obj)
        if self.fields.is_open(cls):
            self._read_attributes(obj, cls)
            return obj
        descriptor = self.fields.describe(cls)
        implicit = self.implicits.implicit_slots(cls)
        for slot in descriptor.slots:
            if slot not in implicit:
                object.__setattr__(obj, slot.attribute, None)

        items = _ImplicitCollections(self, obj, descriptor)
        while (name := self.reader.next_node()) is not None:
            defined_in_name = self.reader.attribute(DEFINED_IN_ATTRIBUTE)
            defined_in = self.aliases.type_for_name(defined_in_name) if defined_in_name else None
            slot = self._ordinary_slot(descriptor, implicit, name, defined_in)
            if slot is not None:
                items.interrupt(slot)
                object.__setattr__(obj, slot.attribute, self._read_node(slot.kind))
            elif name == NULL_NAME and self.reader.attribute(REFERENCE_ATTRIBUTE) is None:
                if not items.add_null(defined_in):
                    self._unresolved(cls, name)
            else:
                declaration = self.implicits.resolve_for_unmarshal(cls, name, defined_in)
                if declaration is None:
                    self._unresolved(cls, name)
                else:
                    fallback = declaration.element_type if name == declaration.item_name else None
                    items.add(declaration, self._read_node(fallback))
            self.reader.close_node()
        items.finish()
        return obj

    def _read_attributes(self, obj, cls: type) -> None:
        # Every value of an open class is written with its class, an empty
        # node without one is None
        while (name := self.reader.next_node()) is not None:
            if name.startswith("__") and name.endswith("__"):
                self._unresolved(cls, name)
            elif (
                self.reader.attribute(CLASS_ATTRIBUTE) is None
                and self.reader.attribute(REFERENCE_ATTRIBUTE) is None
            ):
                object.__setattr__(obj, name, None)
            else:
                object.__setattr__(obj, name, self._read_node(object))
            self.reader.close_node()

    def _ordinary_slot(
        self,
        descriptor: ClassDescriptor,
        implicit: dict[FieldSlot, ImplicitCollectionDeclaration],
        name: str,
        defined_in: type | None,
    ) -> FieldSlot | None:
        for slot in reversed(descriptor.slots):
            if defined_in is not None and slot.declaring_class is not defined_in:
                continue
            if self.aliases.name_for_field(slot.declaring_class, slot.name) == name:
                # The most-derived slot of a name hides any ancestor's slot
                return None if slot in implicit else slot
        return None

    def _unresolved(self, cls: type, name: str) -> None:
        if self.policy.ignore_unknown_elements:
            logger.warning("skipping unknown element %s in %s at %s", name, cls.__qualname__, self.paths.path)
            return
        raise UnresolvedSlotError(
            f"Element '{name}' matches no field and no implicit collection of {cls.__qualname__}.\n"
            f"Declare it with Mapper.add_implicit_collection() or enable\n"
            f"MappingPolicy(ignore_unknown_elements=True).",
            self.paths.path,
        )


class _ImplicitCollections:
    """
    Implicit collection items of one object while its children are read.

    A null marker carries no name or type to route it by. Directly after
    an item it joins that item's collection, and with a single candidate
    collection it goes there. Otherwise it waits: the next item takes it,
    or else its position does, since implicit items are written in slot
    order between the ordinary fields around them.
    """

    def __init__(self, unmarshaller: Unmarshaller, obj, descriptor: ClassDescriptor):
        self.unmarshaller = unmarshaller
        self.obj = obj
        self.cls = descriptor.cls
        self.order = {slot: index for index, slot in enumerate(descriptor.slots)}
        self.containers: dict[FieldSlot, object] = {}
        self.last: ImplicitCollectionDeclaration | None = None
        self.lower = -1
        self.pending: list[list[ImplicitCollectionDeclaration]] = []

    def add(self, declaration: ImplicitCollectionDeclaration, item) -> None:
        for _ in self.pending:
            self._store(declaration, None)
        self.pending = []
        self._store(declaration, item)
        self.last = declaration

    def add_null(self, defined_in: type | None) -> bool:
        candidates = self.unmarshaller.implicits.candidates(self.cls, defined_in)
        if not candidates:
            return False
        after = [declaration for declaration in candidates if self.order[declaration.slot] > self.lower]
        if self.last is not None and self.last in candidates:
            self._store(self.last, None)
        elif len(after) == 1:
            self.last = after[0]
            self._store(self.last, None)
        else:
            self.pending.append(after)
        return True

    def interrupt(self, slot: FieldSlot) -> None:
        """An ordinary field ends the current run of implicit items."""
        position = self.order[slot]
        self._settle(position)
        self.last = None
        self.lower = position

    def finish(self) -> None:
        self._settle(len(self.order))
        implicit = self.unmarshaller.implicits.implicit_slots(self.cls)
        for slot, declaration in implicit.items():
            container = self.containers.get(slot)
            if container is None:
                container = self._new_container(declaration)
            if isinstance(container, _Pending):
                container = _build_immutable(container.impl, container.items)
            object.__setattr__(self.obj, slot.attribute, container)

    def _settle(self, upper: int) -> None:
        """Route waiting nulls to the one implicit slot before position ``upper``."""
        for candidates in self.pending:
            between = [declaration for declaration in candidates if self.order[declaration.slot] < upper]
            if len(between) != 1:
                raise AmbiguousMappingError(
                    f"Cannot tell which implicit collection of {self.cls.__qualname__} "
                    f"a null element belongs to.",
                    self.unmarshaller.paths.path,
                )
            self._store(between[0], None)
        self.pending = []

    def _new_container(self, declaration: ImplicitCollectionDeclaration):
        impl = self.unmarshaller._instantiate(declaration.slot.kind)
        if _is_immutable(impl):
            return _Pending(impl)
        return impl()

    def _store(self, declaration: ImplicitCollectionDeclaration, item) -> None:
        slot = declaration.slot
        container = self.containers.get(slot)
        if container is None:
            container = self._new_container(declaration)
            self.containers[slot] = container
            if not isinstance(container, _Pending):
                object.__setattr__(self.obj, slot.attribute, container)
        if declaration.key_field is not None:
            if item is None:
                raise MappingError(
                    f"Implicit map '{slot.name}' cannot hold a null element.",
                    self.unmarshaller.paths.path,
                )
            container[getattr(item, declaration.key_field)] = item
        elif isinstance(container, _Pending):
            container.items.append(item)
        else:
            _add_item(container, item)


class _Pending:
    """Items of an immutable implicit collection, built once the owner is read."""

    def __init__(self, impl: type):
        self.impl = impl
        self.items: list = []
