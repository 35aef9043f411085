"""
Markdown renderer for the documentation tree.

Takes nodes from a scanned tree and turns them into Markdown with headings,
anchor IDs, C signatures, parameter tables and member listings.
"""

from __future__ import annotations

from .comments import DEPRECATED, comment_info, split_description, strip_markup
from .tree import Kind, description_text, is_public, iter_public, type_text

_KIND_LABELS = {
    Kind.NAMESPACE: "Namespace",
    Kind.CLASS: "Class",
    Kind.STRUCT: "Struct",
    Kind.UNION: "Union",
    Kind.ENUMERATION: "Enum",
    Kind.CONSTANT: "Enumerator",
    Kind.TYPEDEF: "Type",
    Kind.FUNCTION: "Function",
    Kind.VARIABLE: "Variable",
}

_KIND_ANCHOR_PREFIX = {
    Kind.NAMESPACE: "ns",
    Kind.CLASS: "class",
    Kind.STRUCT: "struct",
    Kind.UNION: "union",
    Kind.ENUMERATION: "enum",
    Kind.CONSTANT: "enumval",
    Kind.TYPEDEF: "type",
    Kind.FUNCTION: "func",
    Kind.VARIABLE: "var",
}

_DIRECTIONS = {"I": "in", "O": "out", "IO": "in/out"}

# order members are listed in inside a class, struct, union or namespace
MEMBER_ORDER = (
    Kind.NAMESPACE,
    Kind.CLASS,
    Kind.STRUCT,
    Kind.UNION,
    Kind.ENUMERATION,
    Kind.TYPEDEF,
    Kind.FUNCTION,
    Kind.VARIABLE,
)


def qualified_name(node):
    names = []
    while node is not None and node.kind is not Kind.ROOT:
        if node.name:
            names.append(node.name)
        node = node.owner
    return "::".join(reversed(names))


def anchor_id(node):
    prefix = _KIND_ANCHOR_PREFIX.get(node.kind, "sym")
    return f"{prefix}-{qualified_name(node).replace('::', '.')}"


class RenderConfig:
    def __init__(self, *, heading_level=2, members=True, language="c"):
        self.heading_level = heading_level
        self.members = members
        self.language = language


def _heading(text, level):
    return f"{'#' * min(level, 6)} {text}"


def _join_decl(type_str, name):
    if not type_str:
        return name
    if type_str.endswith(("*", "&")):
        return f"{type_str}{name}"
    return f"{type_str} {name}"


def _is_constructor(fn):
    owner = fn.owner
    if owner is None or owner.kind not in (Kind.CLASS, Kind.STRUCT):
        return False
    # Name() and ~Name()
    return fn.name == owner.name or fn.name[1:] == owner.name


def _arguments(fn):
    args = []
    for arg in fn.iter_children(Kind.ARGUMENT):
        decl = _join_decl(type_text(arg), arg.name or "")
        if arg.default:
            decl += f" = {arg.default}"
        args.append(decl)
    return ", ".join(args) or "void"


def _function_signature(fn):
    rv = fn.find_child(Kind.RETURNVALUE)
    if rv is not None:
        ret = type_text(rv)
    elif _is_constructor(fn):
        ret = ""
    else:
        ret = "void"
    return _join_decl(ret, f"{fn.name}({_arguments(fn)});")


def _variable_signature(var):
    decl = _join_decl(type_text(var), var.name)
    if var.default:
        decl += f" = {var.default}"
    return decl + ";"


def _typedef_signature(td):
    t = type_text(td)
    if "(*)" in t:
        return f"typedef {t.replace('(*)', f'(*{td.name})', 1)};"
    return f"typedef {_join_decl(t, td.name)};"


def _composite_signature(node):
    head = f"{node.kind.value} {node.name}"
    if node.parent_name:
        head += f" : {node.parent_name}"
    lines = [head, "{"]
    for child in node.children:
        if child.kind is Kind.VARIABLE and child.scope != "private":
            lines.append(f"  {_variable_signature(child)}")
        elif child.kind is Kind.FUNCTION and child.scope != "private":
            lines.append(f"  {_function_signature(child)}")
    lines.append("};")
    return "\n".join(lines)


def _enumeration_signature(node):
    constants = [c.name for c in node.iter_children(Kind.CONSTANT)]
    lines = [f"enum {node.name}", "{"]
    lines += [f"  {name}," for name in constants]
    lines.append("};")
    return "\n".join(lines)


def signature(node):
    """C declaration of *node* as shown in the signature block."""
    if node.kind is Kind.FUNCTION:
        return _function_signature(node)
    if node.kind is Kind.VARIABLE:
        return _variable_signature(node)
    if node.kind is Kind.TYPEDEF:
        return _typedef_signature(node)
    if node.kind in (Kind.CLASS, Kind.STRUCT, Kind.UNION):
        return _composite_signature(node)
    if node.kind is Kind.ENUMERATION:
        return _enumeration_signature(node)
    return ""


def _cell(text):
    return strip_markup(text).replace("\n", " ").replace("|", "\\|")


def _badge(text):
    info = comment_info(text)
    if not info:
        return []
    if info == DEPRECATED:
        return ['!!! warning "Deprecated"', "    This symbol is deprecated and should not be used in new code.", ""]
    return [f"*Since {info.strip()}*", ""]


def _parameters(fn):
    rows = []
    for arg in fn.iter_children(Kind.ARGUMENT):
        direction = _DIRECTIONS.get(arg.direction or "", "")
        rows.append(f"| `{arg.name}` | {direction} | {_cell(description_text(arg))} |")
    if not rows:
        return []
    return ["**Parameters:**", "", "| Name | Direction | Description |", "|---|---|---|", *rows, ""]


def _constants(en):
    rows = [f"| `{c.name}` | {_cell(description_text(c))} |" for c in en.iter_children(Kind.CONSTANT)]
    if not rows:
        return []
    return ["| Constant | Description |", "|---|---|", *rows, ""]


def render_node(node, cfg=None):
    if cfg is None:
        cfg = RenderConfig()

    parts = []
    label = _KIND_LABELS.get(node.kind, "")
    htxt = f"`{node.name}`" if node.name else "Documentation"
    if label:
        htxt = f"{label}: {htxt}"

    parts.append(f'<a id="{anchor_id(node)}"></a>')
    parts.append("")
    parts.append(_heading(htxt, cfg.heading_level))
    parts.append("")

    text = description_text(node)
    parts += _badge(text)

    sig = signature(node)
    if sig:
        parts += [f"```{cfg.language}", sig, "```", ""]

    summary, discussion = split_description(strip_markup(text))
    if summary:
        parts += [summary, ""]

    if node.kind is Kind.FUNCTION:
        parts += _parameters(node)
        rv = node.find_child(Kind.RETURNVALUE)
        if rv is not None and description_text(rv):
            parts += [f"**Returns:** {_cell(description_text(rv))}", ""]
    elif node.kind is Kind.ENUMERATION:
        parts += _constants(node)

    if discussion:
        parts += ["**Discussion:**", "", discussion, ""]

    if cfg.members and node.kind in (Kind.NAMESPACE, Kind.CLASS, Kind.STRUCT, Kind.UNION):
        mcfg = RenderConfig(heading_level=cfg.heading_level + 1, members=True, language=cfg.language)
        for kind in MEMBER_ORDER:
            for member in iter_public(node, kind):
                if member.scope == "private":
                    continue
                parts.append(render_node(member, mcfg))

    return "\n".join(parts)


def public_nodes(tree, kind):
    """Public nodes of *kind* at the top level and inside namespaces."""
    out = list(iter_public(tree, kind))
    for ns in iter_public(tree, Kind.NAMESPACE):
        out += public_nodes(ns, kind)
    return out


def render_section(tree, kind, cfg=None, *, title=None):
    if cfg is None:
        cfg = RenderConfig()
    parts = []
    if title:
        parts += [_heading(title, max(1, cfg.heading_level - 1)), ""]
    parts.append("\n---\n\n".join(render_node(n, cfg) for n in public_nodes(tree, kind)))
    return "\n".join(parts)


def _matches(node, name, kind):
    if kind is not None and node.kind is not kind:
        return False
    return node.name == name or qualified_name(node) == name


def render_single(tree, name, kind=None, cfg=None):
    if cfg is None:
        cfg = RenderConfig()
    for node in tree.walk():
        if node.kind not in _KIND_LABELS or not _matches(node, name, kind):
            continue
        if node.kind is Kind.CONSTANT or is_public(node):
            return render_node(node, cfg)
    return f"<!-- apitree: symbol '{name}' not found -->\n"


def summary_line(node):
    summary, _ = split_description(strip_markup(description_text(node)))
    return summary.replace("\n", " ")
