"""
Object graph to document walk.

A Marshaller is created for one marshal call, like a ReferenceTracker, and
drives a NodeWriter:

- Leaf values (anything the ConverterRegistry handles) become node text.
- Collections become one node per item, named after the item's type;
  mappings become <entry> nodes holding a key node and a value node.
- Other objects become one node per mapped field, base class fields first
  and in declaration order within each class. Implicit collections write
  their items in place of the field node. Objects of a class that declares
  no field at all become one node per instance attribute.
- An object met a second time becomes a node with only a reference
  attribute. An object met again while it is still being written (a
  cycle) is either written as a reference to its ancestor node or rejected
  with CyclicReferenceError, depending on the MappingPolicy.

A ``class`` attribute is added whenever the runtime type of a value is not
the type its position implies (the default implementation of the declared
field type, or the item type of an implicit collection), so the document
can be read back without guessing.
"""

from __future__ import annotations

import logging

from arbor.aliases import NULL_NAME, AliasRegistry
from arbor.config import MappingPolicy
from arbor.converters import ConverterRegistry
from arbor.document import CLASS_ATTRIBUTE, DEFINED_IN_ATTRIBUTE, REFERENCE_ATTRIBUTE
from arbor.errors import ConversionError, CyclicReferenceError, MappingError
from arbor.fields import FieldResolver, FieldSlot, collection_kind
from arbor.implicit import ImplicitCollectionDeclaration, ImplicitCollectionRegistry
from arbor.references import PathTracker, ReferenceTracker, VisitStatus
from arbor.streams import NodeWriter, PathTrackingWriter

logger = logging.getLogger(__name__)


class Marshaller:
    """
    Writes one object graph to a NodeWriter.

    Args:
        fields: Field resolver of the owning Mapper.
        implicits: Implicit collection registry of the owning Mapper.
        aliases: Alias registry of the owning Mapper.
        converters: Leaf converters of the owning Mapper.
        policy: Reference and cycle handling for this call.
        writer: Destination of the document.
    """

    def __init__(
        self,
        fields: FieldResolver,
        implicits: ImplicitCollectionRegistry,
        aliases: AliasRegistry,
        converters: ConverterRegistry,
        policy: MappingPolicy,
        writer: NodeWriter,
    ):
        self.fields = fields
        self.implicits = implicits
        self.aliases = aliases
        self.converters = converters
        self.policy = policy
        self.paths = PathTracker()
        self.writer = PathTrackingWriter(writer, self.paths)
        self.references = ReferenceTracker(policy.reference_mode)

    def marshal(self, root) -> None:
        """Write ``root`` as the document's root node."""
        self.writer.open_node(self.aliases.name_for_value(root))
        if root is not None:
            self._write_value(root, None)
        self.writer.close_node()

    # -------------------------------------------------------------------------
    # Values
    # -------------------------------------------------------------------------

    def _write_value(self, value, declared: type | None) -> None:
        """Write ``value`` into the node that is currently open."""
        runtime = type(value)
        converter = self.converters.lookup(runtime)
        if converter is not None:
            self._write_class(runtime, declared)
            try:
                text = converter.to_text(value)
            except (TypeError, ValueError) as e:
                raise ConversionError(
                    f"Cannot convert {runtime.__qualname__} value {value!r} to text: {e}",
                    self.paths.path,
                ) from e
            self.writer.write_text(text)
            return

        visit = self.references.path_for(value, self.paths.path)
        if visit.status is VisitStatus.IN_PROGRESS and not self.policy.cycles_permitted:
            raise CyclicReferenceError(
                f"{runtime.__qualname__} object contains itself (first written at {visit.path}).\n"
                f"Allow cycles with MappingPolicy(allow_cycles=True) and a reference mode\n"
                f"other than 'none', or break the cycle before marshalling.",
                self.paths.path,
            )
        if visit.status is VisitStatus.IN_PROGRESS:
            logger.debug("cycle at %s written as reference %s", self.paths.path, visit.path)
        if visit.status is not VisitStatus.FIRST_VISIT:
            self.writer.write_attribute(REFERENCE_ATTRIBUTE, visit.path)
            return

        try:
            self._write_class(runtime, declared)
            kind = collection_kind(runtime)
            if kind == "map":
                self._write_entries(value)
            elif kind == "collection":
                self._write_items(value)
            else:
                self._write_fields(value)
        finally:
            self.references.leave(value)

    def _write_class(self, runtime: type, declared: type | None) -> None:
        if declared is None:
            return
        if runtime is not self.aliases.default_implementation(declared):
            self.writer.write_attribute(CLASS_ATTRIBUTE, self.aliases.name_for_type(runtime))

    def _write_element(self, name: str, value, declared: type | None = None, defined_in: type | None = None) -> None:
        self.writer.open_node(name)
        if defined_in is not None:
            self.writer.write_attribute(DEFINED_IN_ATTRIBUTE, self.aliases.name_for_type(defined_in))
        if value is not None:
            self._write_value(value, declared)
        self.writer.close_node()

    # -------------------------------------------------------------------------
    # Containers
    # -------------------------------------------------------------------------

    def _write_items(self, collection) -> None:
        for item in collection:
            self._write_element(self.aliases.name_for_value(item), item)

    def _write_entries(self, mapping) -> None:
        for key, value in mapping.items():
            self.writer.open_node("entry")
            self._write_element(self.aliases.name_for_value(key), key)
            self._write_element(self.aliases.name_for_value(value), value)
            self.writer.close_node()

    # -------------------------------------------------------------------------
    # Objects
    # -------------------------------------------------------------------------

    def _write_fields(self, obj) -> None:
        cls = type(obj)
        if self.fields.is_open(cls):
            self._write_attributes(obj)
            return
        undeclared = self.fields.undeclared_attributes(obj)
        if undeclared:
            raise MappingError(
                f"{cls.__qualname__} object has attributes its class does not declare: "
                f"{', '.join(undeclared)}.\n"
                f"Annotate them on the class so they are mapped.",
                self.paths.path,
            )
        implicit = self.implicits.implicit_slots(cls)
        for slot in self.fields.describe(cls).slots:
            value = getattr(obj, slot.attribute, None)
            defined_in = slot.declaring_class if slot.is_shadowed else None
            declaration = implicit.get(slot)
            if declaration is not None:
                self._write_implicit(slot, declaration, value, defined_in)
            elif value is not None:
                name = self.aliases.name_for_field(slot.declaring_class, slot.name)
                self._write_element(name, value, slot.kind, defined_in)

    def _write_attributes(self, obj) -> None:
        # Nothing is declared, so every value carries its class
        for slot in self.fields.instance_slots(obj):
            self._write_element(slot.name, getattr(obj, slot.attribute), object)

    def _write_implicit(
        self,
        slot: FieldSlot,
        declaration: ImplicitCollectionDeclaration,
        value,
        defined_in: type | None,
    ) -> None:
        if value is None:
            return
        kind = collection_kind(type(value))
        if kind is None:
            raise MappingError(
                f"Field '{slot.name}' of {slot.declaring_class.__qualname__} is an implicit "
                f"collection but holds a {type(value).__qualname__}.",
                self.paths.path,
            )
        if kind == "map":
            items = value.values()
        else:
            items = value
        for item in items:
            if item is None:
                if kind == "map":
                    raise MappingError(
                        f"Implicit map '{slot.name}' holds None, which has no "
                        f"'{declaration.key_field}' to key it by.",
                        self.paths.path,
                    )
                self._write_element(NULL_NAME, None, defined_in=defined_in)
            elif declaration.names_item(item):
                self._write_element(declaration.item_name, item, declaration.element_type, defined_in)
            else:
                self._write_element(self.aliases.name_for_value(item), item, defined_in=defined_in)
