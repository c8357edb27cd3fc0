"""
XML -> generic tree.

The document is parsed with xmltodict and then converted into a small
tagged union so that callers never have to guess whether a value is a
string, a mapping or a list:

  ScalarNode    — text content (attributes and leaf elements), always str
  ObjectNode    — element with children and/or attributes, keyed by name
  SequenceNode  — repeated sibling elements, in document order

Attributes are addressable by their bare name, exactly like child
elements. No type inference happens here.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union
from xml.parsers.expat import ExpatError

import xmltodict

from app.config import DEFAULT_MAX_XML_DEPTH
from app.services.errors import MalformedXML

logger = logging.getLogger(__name__)

TEXT_KEY = "#text"


@dataclass(frozen=True)
class ScalarNode:
    value: str


@dataclass(frozen=True)
class ObjectNode:
    children: dict[str, "Node"]


@dataclass(frozen=True)
class SequenceNode:
    items: tuple["Node", ...]


Node = Union[ScalarNode, ObjectNode, SequenceNode]


# ---------------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------------

def child(node: Optional[Node], name: str) -> Optional[Node]:
    """
    Return the child called ``name``, or None.

    Looking a name up on a sequence reads it from the first item, so a
    caller that expected one element and got several still sees data.
    """
    if isinstance(node, SequenceNode):
        node = node.items[0] if node.items else None
    if isinstance(node, ObjectNode):
        return node.children.get(name)
    return None


def path(node: Optional[Node], *names: str) -> Optional[Node]:
    """child() applied repeatedly: path(tree, "feedback", "record")."""
    for name in names:
        node = child(node, name)
        if node is None:
            return None
    return node


def text(node: Optional[Node]) -> Optional[str]:
    """Scalar value of a node, or None when the node has no text."""
    if isinstance(node, SequenceNode):
        node = node.items[0] if node.items else None
    if isinstance(node, ScalarNode):
        return node.value
    if isinstance(node, ObjectNode):
        inner = node.children.get(TEXT_KEY)
        if isinstance(inner, ScalarNode):
            return inner.value
    return None


def as_sequence(node: Optional[Node]) -> tuple:
    """
    Coerce a node to a tuple of nodes.

    None -> (), SequenceNode -> its items, anything else -> (node,).
    A report with a single <record> therefore iterates exactly like one
    with many.
    """
    if node is None:
        return ()
    if isinstance(node, SequenceNode):
        return node.items
    return (node,)


def to_plain(node: Optional[Node]):
    """Convert a node back to plain str / dict / list (for JSON output)."""
    if isinstance(node, ScalarNode):
        return node.value
    if isinstance(node, ObjectNode):
        return {key: to_plain(value) for key, value in node.children.items()}
    if isinstance(node, SequenceNode):
        return [to_plain(item) for item in node.items]
    return None


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _build(value, depth: int, max_depth: int) -> Node:
    if depth > max_depth:
        raise MalformedXML(f"XML nesting exceeds {max_depth} levels")

    if value is None:
        return ScalarNode("")
    if isinstance(value, str):
        return ScalarNode(value)
    if isinstance(value, list):
        # Repeated siblings sit at the same depth as a single element would.
        return SequenceNode(tuple(_build(item, depth, max_depth) for item in value))
    if isinstance(value, dict):
        return ObjectNode(
            {key: _build(item, depth + 1, max_depth) for key, item in value.items()}
        )
    return ScalarNode(str(value))


def parse_xml(xml_text: str, max_depth: int = DEFAULT_MAX_XML_DEPTH) -> ObjectNode:
    """
    Parse an XML document into an ObjectNode keyed by the root element name.

    Raises:
        MalformedXML: the text is not well-formed XML, or nests deeper
                      than max_depth.
    """
    if not isinstance(xml_text, str) or not xml_text.strip():
        raise MalformedXML("XML document is empty")

    try:
        parsed = xmltodict.parse(
            xml_text,
            attr_prefix="",
            cdata_key=TEXT_KEY,
            disable_entities=True,
        )
    except (ExpatError, ValueError) as e:
        raise MalformedXML(f"Could not parse XML: {e}") from e

    tree = _build(dict(parsed), 0, max_depth)
    logger.debug("Parsed XML document with root keys %s", list(tree.children))
    return tree
