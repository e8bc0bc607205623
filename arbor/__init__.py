"""
arbor - object graph to tree document mapping.

This library converts in-memory Python object graphs to a tree-shaped
document (a DocumentNode tree, usually rendered as XML text) and back,
preserving:

- Type identity (type aliases, or fully qualified class names)
- Field structure, including class-private fields shadowed across
  inheritance levels
- Shared objects and cycles, written once and referenced by path
- Configurable naming of types and fields

Basic Usage:
    >>> from arbor import Mapper
    >>>
    >>> mapper = Mapper()
    >>> mapper.alias_type("farm", Farm)
    >>> mapper.alias_type("animal", Animal)
    >>> xml = mapper.to_xml(farm)
    >>> copy = mapper.from_xml(xml)

Implicit collections (items written directly under their owner):
    >>> mapper.add_implicit_collection(Farm, "animals")
    >>> print(mapper.to_xml(farm))
    <farm>
      <size>100</size>
      <animal>
        <name>Cow</name>
      </animal>
      <animal>
        <name>Sheep</name>
      </animal>
    </farm>
    >>>
    >>> # Leaf items need an item name
    >>> mapper.add_implicit_collection(MegaFarm, "names", item_name="name", item_type=str)

Shared objects and cycles:
    >>> from arbor import MappingPolicy
    >>> # Repeated objects become <animal reference="../../animal"/>
    >>> Mapper().to_xml([farm, farm])
    >>>
    >>> # Absolute paths, or no references at all
    >>> Mapper(policy=MappingPolicy(reference_mode="absolute"))
    >>> Mapper(policy=MappingPolicy(reference_mode="none"))

The document tree is a Pydantic model, so it can also travel as JSON:
    >>> node = mapper.marshal(farm)
    >>> json_str = node.model_dump_json()
    >>> copy = mapper.unmarshal(DocumentNode.model_validate_json(json_str))

To write a type as leaf text, register a converter:
    >>> from arbor import ValueConverter
    >>>
    >>> class PointConverter(ValueConverter):
    ...     def to_text(self, value):
    ...         return f"{value.x},{value.y}"
    ...     def from_text(self, text, kind):
    ...         return kind(*map(int, text.split(",")))
    >>>
    >>> mapper.register_converter(Point, PointConverter())

Once configured, call mapper.freeze(); the mapper can then be shared by
concurrent marshal and unmarshal calls.
"""

from arbor.config import (
    ABSOLUTE_REFERENCES,
    DEFAULT_POLICY,
    NO_REFERENCES,
    STRICT_POLICY,
    MappingPolicy,
)
from arbor.converters import ConverterRegistry, ValueConverter
from arbor.document import DocumentNode, from_xml, to_xml
from arbor.errors import (
    AmbiguousMappingError,
    ArborError,
    ConfigurationError,
    ConversionError,
    CyclicReferenceError,
    InvalidReferenceError,
    InvalidSlotError,
    MappingError,
    UnknownTypeError,
    UnresolvedSlotError,
)
from arbor.mapper import Mapper
from arbor.streams import NodeReader, NodeWriter, TreeReader, TreeWriter


def dumps(obj, mapper: Mapper | None = None) -> str:
    """
    Marshal an object graph to XML text.

    Args:
        obj: Root of the object graph.
        mapper: Configured Mapper to use. A default Mapper is used when
            omitted, which names classes by their qualified names.

    Example:
        >>> xml = dumps([1, "two"])
        >>> print(xml)
        <list>
          <int>1</int>
          <string>two</string>
        </list>
    """
    return (mapper or Mapper()).to_xml(obj)


def loads(text: str, mapper: Mapper | None = None, root_type: type | None = None):
    """
    Unmarshal an object graph from XML text.

    Args:
        text: XML produced by dumps() or Mapper.to_xml().
        mapper: Mapper configured the same way as the one that wrote the
            text. A default Mapper is used when omitted.
        root_type: Class of the root object, when the root node name does
            not identify it.

    Example:
        >>> loads(dumps([1, "two"]))
        [1, 'two']
    """
    return (mapper or Mapper()).from_xml(text, root_type)


__all__ = [
    "Mapper",
    "dumps",
    "loads",
    "MappingPolicy",
    "DEFAULT_POLICY",
    "ABSOLUTE_REFERENCES",
    "NO_REFERENCES",
    "STRICT_POLICY",
    "DocumentNode",
    "to_xml",
    "from_xml",
    "NodeWriter",
    "NodeReader",
    "TreeWriter",
    "TreeReader",
    "ValueConverter",
    "ConverterRegistry",
    "ArborError",
    "ConfigurationError",
    "InvalidSlotError",
    "UnknownTypeError",
    "MappingError",
    "AmbiguousMappingError",
    "CyclicReferenceError",
    "UnresolvedSlotError",
    "InvalidReferenceError",
    "ConversionError",
]
