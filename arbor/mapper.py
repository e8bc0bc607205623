"""
The Mapper facade.

A Mapper owns one instance of each long-lived registry (aliases, field
slots, implicit collections, leaf converters) plus a MappingPolicy, and
creates a fresh Marshaller or Unmarshaller for every call.

Example:
    >>> mapper = Mapper()
    >>> mapper.alias_type("farm", Farm)
    >>> mapper.alias_type("animal", Animal)
    >>> mapper.add_implicit_collection(Farm, "animals")
    >>> mapper.freeze()
    >>> print(mapper.to_xml(farm))
    <farm>
      <size>100</size>
      <animal>
        <name>Cow</name>
      </animal>
    </farm>
"""

from __future__ import annotations

import logging

from arbor.aliases import AliasRegistry
from arbor.config import DEFAULT_POLICY, MappingPolicy
from arbor.converters import ConverterRegistry, ValueConverter
from arbor.document import DocumentNode, from_xml, to_xml
from arbor.fields import FieldResolver, FieldSlot
from arbor.implicit import ImplicitCollectionDeclaration, ImplicitCollectionRegistry
from arbor.marshal import Marshaller
from arbor.streams import NodeReader, NodeWriter, TreeReader, TreeWriter
from arbor.unmarshal import Unmarshaller

logger = logging.getLogger(__name__)


class Mapper:
    """
    Configurable object graph ⇄ document mapper.

    Configuration calls may come in any order until freeze(); the result
    of marshal and unmarshal calls does not depend on that order.

    Args:
        policy: Reference, cycle and unknown element handling. Defaults
            to relative references with cycles allowed.
    """

    def __init__(self, policy: MappingPolicy = DEFAULT_POLICY):
        self.policy = policy
        self.aliases = AliasRegistry()
        self.fields = FieldResolver()
        self.implicits = ImplicitCollectionRegistry(self.fields, self.aliases)
        self.converters = ConverterRegistry()

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def alias_type(self, name: str, cls: type) -> None:
        """Write ``cls`` under ``name`` and read ``name`` back as ``cls``."""
        self.aliases.alias_type(name, cls)

    def alias_field(
        self, name: str, cls: type, field_name: str, declaring_class: type | None = None
    ) -> None:
        """
        Write the field ``field_name`` of ``cls`` under ``name``.

        The alias belongs to the slot, so it applies to every subclass that
        inherits the field. Pass ``declaring_class`` to pick a shadowed
        ancestor slot instead of the one ``cls`` itself sees.
        """
        slot = self.fields.slot(cls, field_name, declaring_class)
        self.aliases.alias_field(name, slot.declaring_class, slot.name)

    def omit_field(self, cls: type, field_name: str, declaring_class: type | None = None) -> FieldSlot:
        """Leave a field out of every document."""
        return self.fields.omit_field(cls, field_name, declaring_class)

    def add_implicit_collection(
        self,
        cls: type,
        field_name: str,
        item_name: str | None = None,
        item_type: type | None = None,
        key_field: str | None = None,
    ) -> ImplicitCollectionDeclaration:
        """
        Write the collection field ``field_name`` of ``cls`` without its
        wrapping node.

        Args:
            cls: Class the declaration applies to, together with its
                subclasses.
            field_name: A collection, tuple or mapping field visible from
                ``cls``.
            item_name: Node name for the items. Items are named after their
                own type when omitted.
            item_type: Only items of this class are written under
                ``item_name``; also used to route incoming nodes.
            key_field: Item attribute keying a mapping field.

        Raises:
            InvalidSlotError: If ``cls`` has no field ``field_name``.
            ConfigurationError: If the field is not a collection, or the
                declaration is inconsistent.
        """
        return self.implicits.declare(cls, field_name, item_name, item_type, key_field)

    def add_default_implementation(self, concrete: type, abstract: type) -> None:
        """Instantiate ``concrete`` for fields declared as ``abstract``."""
        self.aliases.register_default_implementation(concrete, abstract)

    def register_converter(self, python_type: type | tuple[type, ...], converter: ValueConverter) -> None:
        """Write values of ``python_type`` as leaf text through ``converter``."""
        self.converters.register(python_type, converter)

    def freeze(self) -> None:
        """End configuration. Later configuration calls raise ConfigurationError."""
        for registry in (self.aliases, self.fields, self.implicits, self.converters):
            registry.freeze()
        logger.debug("mapper frozen")

    @property
    def frozen(self) -> bool:
        return self.aliases.frozen

    # -------------------------------------------------------------------------
    # Mapping
    # -------------------------------------------------------------------------

    def marshal(self, obj, writer: NodeWriter | None = None) -> DocumentNode | None:
        """
        Write ``obj`` as a document.

        Args:
            obj: Root of the object graph.
            writer: Destination. A TreeWriter is used when omitted.

        Returns:
            The document tree when writing to the default TreeWriter,
            otherwise None.

        Raises:
            CyclicReferenceError: If the graph contains a cycle the policy
                does not allow.
            ConversionError: If a leaf value cannot be written as text.
        """
        tree = writer is None
        if tree:
            writer = TreeWriter()
        Marshaller(self.fields, self.implicits, self.aliases, self.converters, self.policy, writer).marshal(obj)
        return writer.root if tree else None

    def unmarshal(self, source: DocumentNode | NodeReader, root_type: type | None = None):
        """
        Rebuild an object graph from a document.

        Args:
            source: A document tree or a reader positioned on the root node.
            root_type: Class of the root object, when the root node name is
                not an alias or qualified name of it.

        Raises:
            UnknownTypeError: If a node names no known type.
            UnresolvedSlotError: If a node matches no field of its owner.
            InvalidReferenceError: If a reference points to no read node.
            AmbiguousMappingError: If a node could belong to several
                implicit collections.
        """
        reader = TreeReader(source) if isinstance(source, DocumentNode) else source
        return Unmarshaller(
            self.fields, self.implicits, self.aliases, self.converters, self.policy, reader
        ).unmarshal(root_type)

    def to_xml(self, obj) -> str:
        """Marshal ``obj`` to XML text."""
        return to_xml(self.marshal(obj), self.policy.indent)

    def from_xml(self, text: str, root_type: type | None = None):
        """Unmarshal an object graph from XML text."""
        return self.unmarshal(from_xml(text), root_type)
