"""
Character-level scanner for C/C++ headers and sources.

This is not a parser. It reads one character at a time, tracks just enough
state (comments, literals, preprocessor lines, brace/paren depth) to spot
declarations, and accumulates the words of each declaration into a ``type``
node until a ``(``, ``;``, ``,`` or ``{`` says what it was. Anything it does
not recognize is dropped rather than rejected.

Each brace-delimited scope being scanned gets its own ``_Frame``; struct,
class, union and namespace bodies recurse with a fresh frame rooted at the
new node.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from itertools import takewhile

from .comments import is_private
from .declarator import add_variable
from .tree import (
    Kind,
    Node,
    describe,
    description_text,
    insert_node,
    new_tree,
)

log = logging.getLogger("mkdocs.plugins.apitree.scanner")


class State(Enum):
    PLAIN = auto()
    PREPROCESSOR = auto()
    BLOCK_COMMENT = auto()
    LINE_COMMENT = auto()
    STRING = auto()
    CHAR = auto()
    TOKEN = auto()


_COMPOSITES = {"class": Kind.CLASS, "struct": Kind.STRUCT, "union": Kind.UNION}
_MEMBER_SCOPES = frozenset({Kind.CLASS, Kind.STRUCT, Kind.UNION})
_ACCESS = ("public", "protected", "private")
_TOKEN_START = "_.~"
_TOKEN_CHARS = "_[]:.~"


def _is_ident_end(text):
    return bool(text) and (text[-1].isalnum() or text[-1] == "_")


def _is_word(frag):
    return bool(frag.text) and (frag.text[0].isalpha() or frag.text[0] == "_")


def _is_function_pointer(words):
    if words[-1] != ")" or "(" not in words:
        return False
    i = words.index("(")
    return i > 0 and i + 1 < len(words) and words[i + 1] == "*"


class _CharStream:
    """Single-character reader with pushback."""

    def __init__(self, source):
        if isinstance(source, str):
            source = io.StringIO(source)
        self._fp = source
        self._pushback = []

    def getc(self):
        if self._pushback:
            return self._pushback.pop()
        return self._fp.read(1)

    def ungetc(self, ch):
        if ch:
            self._pushback.append(ch)


@dataclass
class _Frame:
    tree: Node
    nested: bool
    scope: str | None = None
    state: State = State.PLAIN
    braces: int = 0
    parens: int = 0
    buf: list = field(default_factory=list)
    line_start: bool = True  # block comment: still in leading decoration
    quote: str = ""

    type: Node | None = None
    type_comment: str | None = None  # comment seen inside the type run
    base_type: list | None = None  # leading words shared by a declarator list

    comment: str | None = None
    comment_joinable: bool = False

    # node claimable by a comment on the same line
    last_decl: Node | None = None
    related: list = field(default_factory=list)

    function: Node | None = None
    function_typed: bool = False
    args_open: bool = False
    fstructclass: Node | None = None

    structclass: Node | None = None
    typedefnode: Node | None = None
    enumeration: Node | None = None
    in_value: bool = False


class Scanner:
    """Scan source text into a documentation tree.

    A single Scanner can be reused for several files; the tree passed to
    :meth:`scan` accumulates (and merges) their declarations.
    """

    def __init__(self, filename=""):
        self.filename = filename
        self._stream = None
        self._handlers = {
            State.PLAIN: self._plain,
            State.PREPROCESSOR: self._preprocessor,
            State.BLOCK_COMMENT: self._block_comment,
            State.LINE_COMMENT: self._line_comment,
            State.STRING: self._literal,
            State.CHAR: self._literal,
            State.TOKEN: self._token,
        }

    def scan(self, source, tree):
        """Scan *source* (a string or text stream) into *tree*.

        Malformed input never raises; whatever could not be understood is
        skipped. Returns True.
        """
        self._stream = _CharStream(source)
        try:
            return self._scan(tree, nested=False)
        finally:
            self._stream = None

    def _scan(self, tree, nested=True):
        f = _Frame(tree, nested, scope="private" if tree.kind is Kind.CLASS else None)
        while True:
            ch = self._stream.getc()
            if not ch:
                return True
            if self._handlers[f.state](f, ch):
                return True

    def _getc(self):
        return self._stream.getc()

    def _ungetc(self, ch):
        self._stream.ungetc(ch)

    # ── Node bookkeeping ──

    def _commit(self, scope, node):
        if is_private(description_text(node)):
            log.debug("apitree: %s: skipping private %s %s", self.filename, node.kind.value, node.name)
            return False
        if not insert_node(scope, node):
            return False
        log.debug("apitree: %s: %s %s", self.filename, node.kind.value, node.name)
        return True

    def _take_comment(self, f):
        comment = f.comment
        f.comment = None
        f.comment_joinable = False
        return comment

    def _new_type(self, f):
        t = Node(Kind.TYPE)
        if f.base_type:
            for text, ws in f.base_type:
                t.add_text(text, ws)
        f.base_type = None
        f.type = t
        return t

    def _drop_type(self, f):
        f.type = None
        f.type_comment = None

    def _drop_function(self, f):
        f.function = None
        f.fstructclass = None
        f.function_typed = False
        f.args_open = False
        # comments staged inside the header belong to its arguments
        f.comment = None
        f.type_comment = None

    def _append_word(self, f, token):
        t = f.type if f.type is not None else self._new_type(f)
        ws = bool(t.children) and t.last.text[0] not in "(*"
        if ws and t.last.text in ("-", "+") and not t.last.whitespace:
            # unary sign: = -1
            ws = False
        t.add_text(token, ws)

    def _append_punct(self, f, text, whitespace=None):
        t = f.type
        if t is None:
            if not f.base_type:
                return
            t = self._new_type(f)
        if whitespace is None:
            whitespace = bool(t.children) and _is_ident_end(t.last.text)
        t.add_text(text, whitespace)

    # ── PLAIN ──

    def _plain(self, f, ch):
        if ch == "\n":
            f.last_decl = None
            f.related = []
            f.comment_joinable = False
            return False
        if ch.isspace():
            return False

        if ch == "/":
            nxt = self._getc()
            if nxt == "*":
                f.state = State.BLOCK_COMMENT
                f.buf = []
                f.line_start = True
            elif nxt == "/":
                f.state = State.LINE_COMMENT
                f.buf = []
            else:
                self._ungetc(nxt)
                f.comment_joinable = False
                self._append_punct(f, "/")
            return False

        f.comment_joinable = False

        if ch == "#":
            f.state = State.PREPROCESSOR
            f.quote = ""
        elif ch in "\"'":
            f.state = State.STRING if ch == '"' else State.CHAR
            f.quote = ch
            f.buf = [ch]
        elif ch == "{":
            self._open_brace(f)
        elif ch == "}":
            return self._close_brace(f)
        elif ch == "(":
            self._append_punct(f, "(")
            f.parens += 1
        elif ch == ")":
            self._close_paren(f)
        elif ch == ";":
            self._semicolon(f)
        elif ch == ",":
            self._comma(f)
        elif ch == "=":
            if f.enumeration is not None and f.braces > 0:
                f.in_value = True
            else:
                self._append_punct(f, "=")
        elif ch in "*+-":
            self._append_punct(f, ch)
        elif ch == "&":
            self._append_punct(f, "&", True)
        elif ch == ":":
            if f.type is not None:
                f.type.add_text(":", True)
        elif ch.isalnum() or ch in _TOKEN_START:
            f.state = State.TOKEN
            f.buf = [ch]
        return False

    def _open_brace(self, f):
        words = [c.text for c in f.type.children] if f.type is not None else []
        head = words[0] if words else ""
        second = words[1] if len(words) > 1 else ""

        if f.function is not None:
            self._commit_function(f)
        elif head in _COMPOSITES or (head == "typedef" and second in _COMPOSITES):
            self._open_composite(f)
            return
        elif head == "namespace" and second:
            self._open_namespace(f, second)
            return
        elif len(words) > 1 and (head == "enum" or (head == "typedef" and second == "enum")):
            self._open_enumeration(f)
        elif head == "extern":
            # extern "C" { ... } declares into the current scope
            self._drop_type(f)
            self._scan(f.tree)
            f.last_decl = None
            return
        else:
            self._drop_type(f)

        f.braces += 1
        f.last_decl = None
        f.related = []

    def _commit_function(self, f):
        fn = f.function
        target = f.fstructclass if f.fstructclass is not None else f.tree
        self._commit(target, fn)
        self._drop_function(f)
        self._drop_type(f)

    def _open_composite(self, f):
        t = f.type
        if t.children[0].text == "typedef":
            f.typedefnode = Node(Kind.TYPEDEF)
            t.remove(t.children[0])
        else:
            f.typedefnode = None

        frags = t.children
        node = Node(_COMPOSITES[frags[0].text])
        if len(frags) > 1:
            node.name = frags[1].text.rstrip(":")

        if f.typedefnode is not None:
            # the typedef keeps "struct name" as its type
            frags[0].whitespace = False
        else:
            if len(frags) > 2:
                base = frags[2:]
                if base[0].text == ":":
                    base = base[1:]
                if base:
                    node.parent_name = " ".join(b.text for b in base)
            self._drop_type(f)

        comment = self._take_comment(f)
        if f.typedefnode is not None and comment is not None:
            describe(f.typedefnode, comment)
        describe(node, comment)
        if node.name:
            self._commit(f.tree, node)

        f.structclass = node
        f.last_decl = None
        self._scan(node)

    def _open_namespace(self, f, name):
        self._drop_type(f)
        ns = f.tree.find_child(Kind.NAMESPACE, name)
        if ns is None:
            ns = Node(Kind.NAMESPACE, name=name)
            describe(ns, self._take_comment(f))
            self._commit(f.tree, ns)
        else:
            self._take_comment(f)
        f.last_decl = None
        self._scan(ns)

    def _open_enumeration(self, f):
        t = f.type
        if t.children[0].text == "typedef":
            f.typedefnode = Node(Kind.TYPEDEF)
            t.remove(t.children[0])
        else:
            f.typedefnode = None

        en = Node(Kind.ENUMERATION)
        if len(t.children) > 1:
            en.name = t.children[1].text

        comment = self._take_comment(f)
        if f.typedefnode is not None and comment is not None:
            describe(f.typedefnode, comment)
        describe(en, comment)
        if en.name:
            self._commit(f.tree, en)

        if f.typedefnode is not None:
            t.children[0].whitespace = False
        else:
            self._drop_type(f)
        f.enumeration = en
        f.in_value = False

    def _close_brace(self, f):
        if f.typedefnode is None:
            f.enumeration = None
        f.in_value = False
        f.structclass = None
        f.last_decl = None
        f.related = []

        if f.braces > 0:
            f.braces -= 1
            if f.braces == 0:
                f.comment = None
                f.type_comment = None
            return False
        return f.nested

    def _close_paren(self, f):
        if f.function is not None and f.args_open and f.parens == 1:
            if f.type is not None and len(f.type.children) > 1:
                self._add_argument(f)
            else:
                self._drop_type(f)
            f.args_open = False
        elif f.type is not None and f.parens:
            f.type.add_text(")", False)
        if f.parens:
            f.parens -= 1

    def _comma(self, f):
        if f.enumeration is not None and f.braces > 0:
            f.in_value = False
            return
        if f.function is not None and f.args_open and f.parens == 1:
            if f.type is not None and len(f.type.children) > 1:
                self._add_argument(f)
            else:
                self._drop_type(f)
            return
        if f.type is not None:
            f.type.add_text(",", False)

    def _semicolon(self, f):
        if f.function is not None:
            if f.function_typed or f.tree.kind in _MEMBER_SCOPES:
                self._commit_function(f)
            else:
                self._drop_function(f)

        t = f.type
        if t is not None and t.children:
            words = [c.text for c in t.children]
            if words[0] == "typedef":
                self._finish_typedef(f)
            elif (
                f.braces == 0
                and f.parens == 0
                and ("=" in words[2:] or _is_function_pointer(words))
                and "operator" not in words
                and not self._dropped_head(f, words[0])
            ):
                # int x = f(1);  int (*handler)(int);
                self._make_variable(f, ";")
        self._drop_type(f)
        f.structclass = None
        f.base_type = None
        if f.braces == 0:
            f.typedefnode = None
            f.enumeration = None

    def _dropped_head(self, f, head):
        return head == "extern" or (head == "static" and f.tree.kind is Kind.ROOT)

    def _finish_typedef(self, f):
        t = f.type
        frags = t.children
        name = None
        for i, frag in enumerate(frags[1:], 1):
            if frag.text != "(":
                continue
            if i + 1 < len(frags) and frags[i + 1].text == "*":
                # typedef int (*name)(...)
                j = i + 1
                while j < len(frags) and frags[j].text == "*":
                    j += 1
                if j < len(frags):
                    name = frags[j]
            elif i > 1:
                # typedef int name(...)
                name = frags[i - 1]
            break
        if name is None:
            name = frags[-1]

        td = Node(Kind.TYPEDEF, name=name.text)
        if name is not frags[0]:
            t.remove(frags[0])
        t.remove(name)
        if t.children:
            t.children[0].whitespace = False
        td.add(t)
        f.type = None

        comment = self._take_comment(f)
        if comment is not None:
            describe(td, comment)
        self._commit(f.tree, td)
        f.last_decl = td
        f.related = []

    # ── Comments ──

    def _block_comment(self, f, ch):
        if f.line_start:
            if ch == "*":
                nxt = self._getc()
                if nxt == "/":
                    self._end_block_comment(f)
                else:
                    self._ungetc(nxt)
                return False
            if ch == "\n":
                if f.buf:
                    f.buf.append("\n")
                return False
            if ch.isspace():
                return False
            f.line_start = False

        if ch == "/" and f.buf and f.buf[-1] == "*":
            f.buf.pop()
            self._end_block_comment(f)
        elif ch == "\n":
            f.line_start = True
            if f.buf:
                f.buf.append("\n")
        else:
            f.buf.append(ch)
        return False

    def _end_block_comment(self, f):
        text = "".join(f.buf).rstrip().rstrip("*").rstrip()
        f.buf = []
        f.state = State.PLAIN
        self._finish_comment(f, text, line=False)

    def _line_comment(self, f, ch):
        if ch == "\n":
            text = "".join(f.buf).lstrip("/!").strip()
            f.buf = []
            f.state = State.PLAIN
            self._finish_comment(f, text, line=True)
            f.last_decl = None
            f.related = []
        elif ch != "\r":
            f.buf.append(ch)
        return False

    def _finish_comment(self, f, text, line):
        if not text:
            return
        node = f.last_decl
        if node is not None:
            related = f.related
            f.last_decl = None
            f.related = []
            f.comment_joinable = False
            if is_private(text):
                for n in [node, *related]:
                    n.detach()
            else:
                for n in [node, *related]:
                    describe(n, text)
            return

        if f.braces == 0 and f.tree.kind in _MEMBER_SCOPES and not description_text(f.tree):
            describe(f.tree, text)
            if is_private(text):
                f.tree.detach()
            return

        in_enum_body = f.enumeration is not None and f.braces > 0
        if f.type is not None and f.type.children and f.function is None and not in_enum_body:
            # typedef enum keeps its type run alive across the body
            f.type_comment = text
            return

        if line and f.comment_joinable and f.comment is not None:
            f.comment = f.comment + "\n" + text
        else:
            f.comment = text
        f.comment_joinable = line

    # ── Preprocessor & literals ──

    def _preprocessor(self, f, ch):
        if ch == "\n":
            f.state = State.PLAIN
            f.quote = ""
            f.last_decl = None
            f.related = []
        elif ch == "\\":
            self._getc()
        elif f.quote:
            # #define PATTERN "src/*.c"
            if ch == f.quote:
                f.quote = ""
        elif ch in "\"'":
            f.quote = ch
        elif ch == "/":
            nxt = self._getc()
            if nxt == "*":
                self._skip_block_comment()
            else:
                self._ungetc(nxt)
        return False

    def _skip_block_comment(self):
        prev = ""
        while True:
            ch = self._getc()
            if not ch or (prev == "*" and ch == "/"):
                return
            prev = ch

    def _literal(self, f, ch):
        f.buf.append(ch)
        if ch == "\\":
            nxt = self._getc()
            if nxt:
                f.buf.append(nxt)
        elif ch == f.quote:
            literal = "".join(f.buf)
            f.buf = []
            f.state = State.PLAIN
            if f.type is not None:
                f.type.add_text(literal, bool(f.type.children))
        return False

    # ── Tokens ──

    def _token(self, f, ch):
        if ch.isalnum() or ch in _TOKEN_CHARS or (ch == "," and f.parens > 1):
            f.buf.append(ch)
            return False

        self._ungetc(ch)
        f.state = State.PLAIN
        token = "".join(f.buf)
        f.buf = []

        if f.braces == 0:
            self._declaration_token(f, token, ch)
        elif f.enumeration is not None:
            if not f.in_value and not token[0].isdigit():
                self._add_constant(f, token)
        else:
            self._drop_type(f)
        return False

    def _declaration_token(self, f, token, ch):
        t = f.type
        if (
            (t is None or not t.children)
            and f.tree.kind in _MEMBER_SCOPES
            and token.rstrip(":") in _ACCESS
        ):
            f.scope = token.rstrip(":")
            return

        if t is None:
            t = self._new_type(f)
        words = [c.text for c in t.children]

        if f.function is None and ch == "(" and "=" not in words and words[:1] != ["typedef"]:
            self._start_function(f, token)
        elif f.function is not None and f.args_open and f.parens == 1 and ch in "),":
            if token == "void" and not t.children:
                self._drop_type(f)
            else:
                self._append_word(f, token)
                self._add_argument(f)
        elif t.children and f.function is None and ch in ";,":
            self._end_declarator(f, token, ch)
        else:
            self._append_word(f, token)

    def _start_function(self, f, token):
        t = f.type
        words = [c.text for c in t.children]
        if words and self._dropped_head(f, words[0]):
            self._drop_type(f)
            return

        fn = Node(Kind.FUNCTION, name=token)
        f.fstructclass = None
        cls, sep, rest = token.partition("::")
        if sep and cls:
            f.fstructclass = f.tree.find_child(Kind.CLASS, cls) or f.tree.find_child(Kind.STRUCT, cls)
            fn.name = rest
        if f.scope:
            fn.scope = f.scope

        if t.children and t.last.text != "void":
            rv = Node(Kind.RETURNVALUE)
            t.children[0].whitespace = False
            rv.add(t)
            describe(rv, f.type_comment)
            fn.add(rv)

        describe(fn, self._take_comment(f))
        f.function = fn
        f.function_typed = bool(t.children)
        f.args_open = True
        f.type = None
        f.type_comment = None

    def _add_argument(self, f):
        arg = add_variable(Kind.ARGUMENT, f.type, parent=f.function)
        f.type = None
        f.type_comment = None
        f.last_decl = arg
        f.related = []

    def _end_declarator(self, f, token, ch):
        t = f.type
        head = t.children[0].text

        if f.typedefnode is not None or f.structclass is not None:
            td = f.typedefnode
            if td is not None:
                td.name = token
                t.children[0].whitespace = False
                td.insert_first(t)
                self._commit(f.tree, td)
            related = [n for n in (f.structclass, f.enumeration) if n is not None]
            for node in related:
                if not node.name:
                    node.name = token
                    self._commit(f.tree, node)
            f.type = None
            f.typedefnode = None
            f.structclass = None
            f.enumeration = None
            if td is not None:
                f.last_decl = td
                f.related = related
            else:
                f.last_decl = None
                f.related = []
        elif head == "typedef":
            td = Node(Kind.TYPEDEF, name=token)
            t.remove(t.children[0])
            if t.children:
                t.children[0].whitespace = False
            td.add(t)
            f.type = None
            comment = self._take_comment(f)
            if comment is not None:
                describe(td, comment)
            self._commit(f.tree, td)
            f.last_decl = td
            f.related = []
        elif f.parens == 0:
            if self._dropped_head(f, head):
                self._drop_type(f)
                return
            self._append_word(f, token)
            self._make_variable(f, ch)
        else:
            self._append_word(f, token)

    def _make_variable(self, f, ch):
        var = add_variable(Kind.VARIABLE, f.type)
        self._drop_type(f)
        if var is None:
            return
        if ch == ",":
            f.base_type = [(c.text, c.whitespace) for c in takewhile(_is_word, var.type.children)]
        else:
            f.base_type = None
        if f.scope:
            var.scope = f.scope
        comment = self._take_comment(f)
        if comment is not None:
            describe(var, comment)
        self._commit(f.tree, var)
        f.last_decl = var
        f.related = []

    def _add_constant(self, f, token):
        constant = Node(Kind.CONSTANT, name=token)
        comment = self._take_comment(f)
        if comment is not None:
            describe(constant, comment)
        if self._commit(f.enumeration, constant):
            f.last_decl = constant
            f.related = []


# -- convenience --


def scan_string(text, tree=None, filename="<string>"):
    if tree is None:
        tree = new_tree()
    Scanner(filename).scan(text, tree)
    return tree


def scan_file(path, tree=None):
    if tree is None:
        tree = new_tree()
    with open(path, "r", encoding="utf-8", errors="replace") as fp:
        Scanner(str(path)).scan(fp, tree)
    return tree
