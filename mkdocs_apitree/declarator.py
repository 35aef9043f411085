"""
Declarator synthesis: turn an accumulated type run into a named node.

The scanner collects everything it sees for a declaration into a ``type``
node (one text fragment per keyword, identifier or punctuation mark). Once
the declaration ends, the trailing fragments are peeled off again:

  int *foo = 0          name ``foo``, type ``int *``, default ``0``
  void (*cb)(int x)     name ``(*cb)(int x)``, type ``void``
"""

from __future__ import annotations

from .tree import Node, join_text


def _take_from(type_node, index):
    taken = type_node.children[index:]
    for frag in taken:
        type_node.remove(frag)
    return taken


def add_variable(kind, type_node, parent=None):
    """Build an argument or variable node from *type_node*.

    The type node is consumed: its name and default fragments are removed and
    what remains becomes the new node's ``type`` child. When *parent* is
    given the node is appended to it (arguments keep declaration order).
    Returns None for a missing or empty type.
    """
    if type_node is None or not type_node.children:
        return None

    variable = Node(kind)

    eq = next((i for i, f in enumerate(type_node.children) if f.text == "="), None)
    if eq is not None:
        value = _take_from(type_node, eq)[1:]
        variable.default = join_text(value)
        if not type_node.children:
            return None

    if type_node.last.text.startswith(")"):
        paren = next(
            (i for i, f in enumerate(type_node.children) if f.text.startswith("(")), None
        )
        if paren is None:
            paren = len(type_node.children) - 1
        variable.name = join_text(_take_from(type_node, paren))
    else:
        variable.name = type_node.last.text
        type_node.remove(type_node.last)

    if type_node.children:
        type_node.children[0].whitespace = False
    variable.add(type_node)

    if parent is not None:
        parent.add(variable)
    return variable
