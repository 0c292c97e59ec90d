"""Playbook content trees.

Stored playbook contents are a JSON list of nodes. Each node is either a text
leaf (``{"text": ...}``) or an element with a ``type`` and optional
``children``. Parsing turns that into a closed set of node variants so the
containment indexer can walk it without guessing at dict shapes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Tuple, Union

from snippetbase.models.containment import (
    OBJECT_PLAYBOOK_EMBED,
    OBJECT_PLAYBOOK_LINK,
    OBJECT_SNIPPET,
)

logger = logging.getLogger(__name__)

NODE_PARAGRAPH = "paragraph"
NODE_SNIPPET = "snippet"
NODE_PLAYBOOK_EMBED = "playbook-embed"
NODE_PLAYBOOK_LINK = "playbook-link"

CONTAINER_TYPES = {
    "heading-one",
    "heading-two",
    "heading-three",
    "block-quote",
    "bulleted-list",
    "numbered-list",
    "list-item",
    "section",
    "link",
}


class ContentTreeError(ValueError):
    """Raised when stored contents cannot be read as a content tree."""


@dataclass
class Text:
    text: str


@dataclass
class Paragraph:
    children: List["Node"] = field(default_factory=list)


@dataclass
class EmbeddedSnippet:
    static_id: str
    children: List["Node"] = field(default_factory=list)


@dataclass
class EmbeddedPlaybook:
    static_id: str
    children: List["Node"] = field(default_factory=list)


@dataclass
class PlaybookLink:
    static_id: str
    children: List["Node"] = field(default_factory=list)


@dataclass
class Container:
    type: str
    children: List["Node"] = field(default_factory=list)


Node = Union[Text, Paragraph, EmbeddedSnippet, EmbeddedPlaybook, PlaybookLink, Container]

_REFERENCE_NODES = {
    NODE_SNIPPET: (EmbeddedSnippet, "snippet"),
    NODE_PLAYBOOK_EMBED: (EmbeddedPlaybook, "playbook"),
    NODE_PLAYBOOK_LINK: (PlaybookLink, "playbook"),
}


def parse_contents(contents: Any) -> List[Node]:
    if contents is None:
        return []
    if not isinstance(contents, list):
        raise ContentTreeError(f"contents must be a list of nodes, got {type(contents).__name__}")
    return [parse_node(raw, path=str(i)) for i, raw in enumerate(contents)]


def parse_node(raw: Any, path: str = "0") -> Node:
    if not isinstance(raw, dict):
        raise ContentTreeError(f"node {path} is not an object")

    node_type = raw.get("type")
    if node_type is None:
        if "text" not in raw:
            raise ContentTreeError(f"node {path} has neither a type nor text")
        text = raw["text"]
        if not isinstance(text, str):
            raise ContentTreeError(f"text node {path} must hold a string")
        return Text(text=text)
    if not isinstance(node_type, str):
        raise ContentTreeError(f"node {path} has a non-string type")

    children = _parse_children(raw, path)
    if node_type == NODE_PARAGRAPH:
        return Paragraph(children=children)
    if node_type in _REFERENCE_NODES:
        node_cls, key = _REFERENCE_NODES[node_type]
        static_id = raw.get(key)
        if not isinstance(static_id, str) or not static_id:
            raise ContentTreeError(f"{node_type} node {path} is missing '{key}'")
        return node_cls(static_id=static_id, children=children)
    if node_type not in CONTAINER_TYPES:
        logger.warning("[containment] unknown node type '%s' at %s, reading it as a container", node_type, path)
    return Container(type=node_type, children=children)


def _parse_children(raw: dict, path: str) -> List[Node]:
    children = raw.get("children")
    if children is None:
        return []
    if not isinstance(children, list):
        raise ContentTreeError(f"children of node {path} must be a list")
    return [parse_node(child, path=f"{path}.{i}") for i, child in enumerate(children)]


def iter_references(nodes: List[Node]) -> Iterator[Tuple[str, str]]:
    """Depth-first ``(static_id, object_kind)`` for every embed and link, duplicates included."""
    for node in nodes:
        if isinstance(node, EmbeddedSnippet):
            yield node.static_id, OBJECT_SNIPPET
        elif isinstance(node, EmbeddedPlaybook):
            yield node.static_id, OBJECT_PLAYBOOK_EMBED
        elif isinstance(node, PlaybookLink):
            yield node.static_id, OBJECT_PLAYBOOK_LINK
        elif isinstance(node, Text):
            continue
        elif not isinstance(node, (Paragraph, Container)):
            raise TypeError(f"unhandled content node {node!r}")
        yield from iter_references(node.children)


def extract_objects(contents: Any) -> List[Tuple[str, str]]:
    """Unique references in first-occurrence order."""
    seen = set()
    objects: List[Tuple[str, str]] = []
    for ref in iter_references(parse_contents(contents)):
        if ref in seen:
            continue
        seen.add(ref)
        objects.append(ref)
    return objects
