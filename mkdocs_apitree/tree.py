"""
Documentation tree for scanned C/C++ declarations.

Every scanned file feeds one ordered tree of Nodes. Composite nodes (root,
class, struct, union, enumeration) keep their named children sorted by name,
and inserting a node with the same kind and name replaces the old one. That
merge rule is what lets a tree loaded from a previous run be re-scanned and
updated in place.

The tree is persisted as XML so it can be reloaded for incremental updates.
"""

from __future__ import annotations

import os
import re
import weakref
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum

from .comments import is_private, normalize_comment


class Kind(Enum):
    ROOT = "apitree"
    NAMESPACE = "namespace"
    CLASS = "class"
    STRUCT = "struct"
    UNION = "union"
    ENUMERATION = "enumeration"
    CONSTANT = "constant"
    TYPEDEF = "typedef"
    FUNCTION = "function"
    VARIABLE = "variable"
    ARGUMENT = "argument"
    RETURNVALUE = "returnvalue"
    TYPE = "type"
    DESCRIPTION = "description"
    TEXT = "text"
    OPAQUE = "opaque"


COMPOSITE_KINDS = frozenset(
    {Kind.ROOT, Kind.NAMESPACE, Kind.CLASS, Kind.STRUCT, Kind.UNION, Kind.ENUMERATION}
)

# XML attribute name -> Node field name
_ATTRS = (
    ("name", "name"),
    ("scope", "scope"),
    ("parent", "parent_name"),
    ("default", "default"),
    ("direction", "direction"),
)

_XML_INVALID_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


@dataclass(eq=False)
class Node:
    kind: Kind
    name: str | None = None
    scope: str | None = None
    parent_name: str | None = None
    default: str | None = None
    direction: str | None = None
    text: str = ""
    whitespace: bool = False  # TEXT fragments: separated from the previous one
    children: list[Node] = field(default_factory=list, repr=False)
    _owner: weakref.ref | None = field(default=None, repr=False)

    @property
    def owner(self):
        return self._owner() if self._owner is not None else None

    def add(self, child, before=None):
        if child.owner is not None:
            child.owner.remove(child)
        if before is None:
            self.children.append(child)
        else:
            self.children.insert(self.children.index(before), child)
        child._owner = weakref.ref(self)
        return child

    def insert_first(self, child):
        if self.children:
            return self.add(child, before=self.children[0])
        return self.add(child)

    def remove(self, child):
        self.children.remove(child)
        child._owner = None

    def detach(self):
        owner = self.owner
        if owner is not None:
            owner.remove(self)

    def add_text(self, text, whitespace=False):
        return self.add(Node(Kind.TEXT, text=text, whitespace=whitespace))

    def find_child(self, kind, name=None):
        for child in self.children:
            if child.kind is kind and (name is None or child.name == name):
                return child
        return None

    def iter_children(self, kind):
        return (c for c in self.children if c.kind is kind)

    @property
    def description(self):
        return self.find_child(Kind.DESCRIPTION)

    @property
    def type(self):
        return self.find_child(Kind.TYPE)

    @property
    def last(self):
        return self.children[-1] if self.children else None

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


def new_tree():
    return Node(Kind.ROOT)


def make_type(tokens):
    """Build a type node from ``(text, whitespace)`` pairs or bare strings."""
    type_node = Node(Kind.TYPE)
    for i, tok in enumerate(tokens):
        if isinstance(tok, tuple):
            type_node.add_text(*tok)
        else:
            type_node.add_text(tok, i > 0)
    return type_node


def join_text(fragments):
    """Concatenate text fragments, honouring their whitespace flags."""
    parts = []
    for frag in fragments:
        if frag.kind is Kind.TEXT and frag.whitespace and parts:
            parts.append(" ")
        parts.append(frag.text)
    return "".join(parts)


def get_text(node):
    if node is None:
        return ""
    return join_text(c for c in node.children if c.kind in (Kind.TEXT, Kind.OPAQUE))


def type_text(node):
    """Declared type of a node (or of a bare type node) as a string."""
    if node is not None and node.kind is not Kind.TYPE:
        node = node.type
    return get_text(node)


def set_description(node, text):
    old = node.description
    if old is not None:
        node.remove(old)
    desc = Node(Kind.DESCRIPTION)
    if text:
        desc.add(Node(Kind.OPAQUE, text=text))
    return node.add(desc)


def describe(node, raw):
    """Normalize *raw* comment text into the description of *node*.

    A direction marker is recorded on argument nodes only. Returns the
    normalized text.
    """
    text, direction = normalize_comment(raw or "")
    if direction and node.kind is Kind.ARGUMENT:
        node.direction = direction
    set_description(node, text)
    return text


def description_text(node):
    return get_text(node.description) if node is not None else ""


# ── Insertion & merge ──


def insert_node(scope, node):
    """Insert *node* into *scope* in name order, replacing a same-kind namesake.

    Returns False when the node is anonymous or has an implementation-private
    name (leading underscore).
    """
    if node.owner is scope:
        return True
    name = node.name
    if not name or name.startswith("_"):
        return False

    old = scope.find_child(node.kind, name)
    if old is not None:
        if old.scope and not node.scope:
            node.scope = old.scope
        scope.remove(old)

    for sibling in scope.children:
        if sibling.name is not None and name < sibling.name:
            scope.add(node, before=sibling)
            break
    else:
        scope.add(node)
    return True


# ── Public lookup ──


def is_public(node):
    desc = node.description
    if desc is None:
        return False
    return not is_private(get_text(desc))


def iter_public(scope, kind, name=None):
    for child in scope.children:
        if child.kind is not kind:
            continue
        if name is not None and child.name != name:
            continue
        if is_public(child):
            yield child


def find_public(scope, kind, name=None):
    return next(iter_public(scope, kind, name), None)


# ── XML persistence ──


def _xml_safe(text):
    # form feeds and other C0 controls are not allowed in XML 1.0
    return _XML_INVALID_RE.sub("", text)


def _to_element(node):
    el = ET.Element(node.kind.value)
    for attr, fname in _ATTRS:
        value = getattr(node, fname)
        if value is not None:
            el.set(attr, _xml_safe(value))
    if node.kind in (Kind.TYPE, Kind.DESCRIPTION):
        el.text = _xml_safe(get_text(node))
        return el
    for child in node.children:
        if child.kind in (Kind.TEXT, Kind.OPAQUE):
            continue
        el.append(_to_element(child))
    return el


def _from_element(el):
    try:
        kind = Kind(el.tag)
    except ValueError:
        return None
    node = Node(kind)
    for attr, fname in _ATTRS:
        if attr in el.attrib:
            setattr(node, fname, el.attrib[attr])
    if kind is Kind.TYPE:
        for i, word in enumerate((el.text or "").split()):
            node.add_text(word, i > 0)
        return node
    if kind is Kind.DESCRIPTION:
        if el.text:
            node.add(Node(Kind.OPAQUE, text=el.text))
        return node
    for sub in el:
        child = _from_element(sub)
        if child is not None:
            node.add(child)
    return node


def to_xml(tree):
    root = _to_element(tree)
    ET.indent(root)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"


def from_xml(text):
    try:
        el = ET.fromstring(text)
    except ET.ParseError as exc:
        raise RuntimeError(f"invalid documentation XML: {exc}") from exc
    if el.tag != Kind.ROOT.value:
        raise RuntimeError(f"documentation XML is missing the <{Kind.ROOT.value}> root")
    return _from_element(el)


def load_tree(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except OSError as exc:
        raise RuntimeError(f"unable to read documentation file {path}: {exc}") from exc
    return from_xml(text)


def save_tree(tree, path):
    d = os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(to_xml(tree))
