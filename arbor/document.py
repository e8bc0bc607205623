"""
Document tree model and its XML text form.

A DocumentNode is the in-memory form of a marshalled object graph: a named
node with ordered attributes, ordered children and optional leaf text. The
model is a Pydantic model so the same tree can be exchanged as JSON with
model_dump_json() / model_validate_json() in addition to the XML text
produced by to_xml().

Example:
    >>> node = DocumentNode(name="farm", children=[
    ...     DocumentNode(name="size", text="100"),
    ...     DocumentNode(name="null"),
    ... ])
    >>> print(to_xml(node))
    <farm>
      <size>100</size>
      <null/>
    </farm>
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from xml.sax.saxutils import escape, quoteattr

from pydantic import BaseModel, Field

# Name of the marker node standing for a None element
NULL_NODE = "null"

# Attributes the engine itself reads and writes
REFERENCE_ATTRIBUTE = "reference"
DEFINED_IN_ATTRIBUTE = "defined-in"
CLASS_ATTRIBUTE = "class"


class DocumentNode(BaseModel):
    """
    One node of a document tree.

    Attributes:
        name: External name of the node (type alias, field name or item name).
        attributes: Ordered attributes, e.g. reference, defined-in, class.
        children: Ordered child nodes.
        text: Leaf text. None for nodes that carry no text at all.
    """

    name: str
    attributes: dict[str, str] = Field(default_factory=dict)
    children: list[DocumentNode] = Field(default_factory=list)
    text: str | None = None

    @property
    def is_null(self) -> bool:
        return self.name == NULL_NODE and not self.children and not self.attributes

    def child(self, name: str) -> DocumentNode | None:
        """Return the first child with the given name, if any."""
        for node in self.children:
            if node.name == name:
                return node
        return None


# =============================================================================
# XML Text Form
# =============================================================================


def to_xml(node: DocumentNode, indent: str = "  ") -> str:
    """
    Render a document tree as indented XML text.

    Nodes without children and without text are written self-closing,
    so the null marker renders as <null/>.
    """
    lines: list[str] = []
    _render(node, 0, indent, lines)
    return "\n".join(lines)


def _render(node: DocumentNode, depth: int, indent: str, lines: list[str]) -> None:
    pad = indent * depth
    attrs = "".join(f" {key}={quoteattr(value)}" for key, value in node.attributes.items())
    if node.children:
        lines.append(f"{pad}<{node.name}{attrs}>")
        for child in node.children:
            _render(child, depth + 1, indent, lines)
        lines.append(f"{pad}</{node.name}>")
    elif node.text is None:
        lines.append(f"{pad}<{node.name}{attrs}/>")
    else:
        lines.append(f"{pad}<{node.name}{attrs}>{escape(node.text)}</{node.name}>")


def from_xml(text: str) -> DocumentNode:
    """Parse XML text into a document tree."""
    return _from_element(ET.fromstring(text))


def _from_element(element: ET.Element) -> DocumentNode:
    children = [_from_element(child) for child in element]
    return DocumentNode(
        name=element.tag,
        attributes=dict(element.attrib),
        children=children,
        # Text between child elements is only indentation
        text=None if children else element.text,
    )
