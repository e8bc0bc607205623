"""
Hierarchical writer and reader primitives.

The engine only ever talks to a document through these primitives, so any
tree-shaped format can sit underneath. TreeWriter and TreeReader work on
DocumentNode trees; the XML text form is produced from and parsed into
those trees by arbor.document.

The PathTracking wrappers keep a PathTracker in step with the underlying
stream, which is how references get their structural paths.
"""

from __future__ import annotations

from arbor.document import DocumentNode
from arbor.references import PathTracker


# =============================================================================
# Writers
# =============================================================================


class NodeWriter:
    """Streaming writer contract used by the Marshaller."""

    def open_node(self, name: str) -> None:
        raise NotImplementedError

    def write_attribute(self, key: str, value: str) -> None:
        raise NotImplementedError

    def write_text(self, text: str) -> None:
        raise NotImplementedError

    def close_node(self) -> None:
        raise NotImplementedError


class TreeWriter(NodeWriter):
    """Builds a DocumentNode tree. The finished tree is available as ``root``."""

    def __init__(self):
        self.root: DocumentNode | None = None
        self._stack: list[DocumentNode] = []

    def open_node(self, name: str) -> None:
        node = DocumentNode(name=name)
        if self._stack:
            self._stack[-1].children.append(node)
        elif self.root is None:
            self.root = node
        else:
            raise ValueError(f"Document already has a root node '{self.root.name}'")
        self._stack.append(node)

    def write_attribute(self, key: str, value: str) -> None:
        self._stack[-1].attributes[key] = value

    def write_text(self, text: str) -> None:
        node = self._stack[-1]
        node.text = text if node.text is None else node.text + text

    def close_node(self) -> None:
        self._stack.pop()


class PathTrackingWriter(NodeWriter):
    """Delegating writer that keeps ``tracker`` at the current node."""

    def __init__(self, writer: NodeWriter, tracker: PathTracker):
        self.writer = writer
        self.tracker = tracker

    def open_node(self, name: str) -> None:
        self.tracker.push(name)
        self.writer.open_node(name)

    def write_attribute(self, key: str, value: str) -> None:
        self.writer.write_attribute(key, value)

    def write_text(self, text: str) -> None:
        self.writer.write_text(text)

    def close_node(self) -> None:
        self.writer.close_node()
        self.tracker.pop()


# =============================================================================
# Readers
# =============================================================================


class NodeReader:
    """
    Streaming reader contract used by the Unmarshaller.

    A reader starts positioned on the root node. next_node() moves down into
    the next unread child and returns its name, or returns None (staying on
    the current node) when every child has been read. close_node() moves
    back up to the parent.
    """

    @property
    def name(self) -> str:
        raise NotImplementedError

    def next_node(self) -> str | None:
        raise NotImplementedError

    def attribute(self, key: str) -> str | None:
        raise NotImplementedError

    def text(self) -> str | None:
        raise NotImplementedError

    def close_node(self) -> None:
        raise NotImplementedError


class TreeReader(NodeReader):
    """Reads a DocumentNode tree."""

    def __init__(self, root: DocumentNode):
        self._stack: list[list] = [[root, 0]]

    @property
    def name(self) -> str:
        return self._stack[-1][0].name

    def next_node(self) -> str | None:
        entry = self._stack[-1]
        node, index = entry
        if index >= len(node.children):
            return None
        entry[1] = index + 1
        child = node.children[index]
        self._stack.append([child, 0])
        return child.name

    def attribute(self, key: str) -> str | None:
        return self._stack[-1][0].attributes.get(key)

    def text(self) -> str | None:
        return self._stack[-1][0].text

    def close_node(self) -> None:
        if len(self._stack) == 1:
            raise ValueError("Cannot move above the root node")
        self._stack.pop()


class PathTrackingReader(NodeReader):
    """Delegating reader that keeps ``tracker`` at the current node."""

    def __init__(self, reader: NodeReader, tracker: PathTracker):
        self.reader = reader
        self.tracker = tracker
        tracker.push(reader.name)

    @property
    def name(self) -> str:
        return self.reader.name

    def next_node(self) -> str | None:
        name = self.reader.next_node()
        if name is not None:
            self.tracker.push(name)
        return name

    def attribute(self, key: str) -> str | None:
        return self.reader.attribute(key)

    def text(self) -> str | None:
        return self.reader.text()

    def close_node(self) -> None:
        self.reader.close_node()
        self.tracker.pop()
