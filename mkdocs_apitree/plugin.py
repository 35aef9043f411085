"""
MkDocs plugin for generating API reference pages from C/C++ headers.

This is the main plugin module. It hooks into MkDocs' build lifecycle to
discover source files, scan them into one documentation tree per source
group (optionally merged with and saved back to an XML tree file), build a
cross-reference registry, and render everything as Markdown pages.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import re
from dataclasses import dataclass, field
from mkdocs.config import config_options
from mkdocs.config.base import Config as MkDocsConfig
from mkdocs.plugins import BasePlugin
from mkdocs.structure.files import File

from .renderer import (
    RenderConfig,
    anchor_id,
    public_nodes,
    qualified_name,
    render_section,
    render_single,
    summary_line,
)
from .scanner import scan_file
from .tree import Kind, iter_public, load_tree, new_tree, save_tree

log = logging.getLogger("mkdocs.plugins.apitree")

_DIRECTIVE_RE = re.compile(
    r"^(?P<indent>[ \t]*):::[ \t]+apitree:"
    r"(?P<directive>autodoc|autofunction|autostruct|autoclass|autounion|autoenum|autotype|autovar)\s*\n"
    r"(?P<body>(?:(?P=indent)[ \t]+:\w+:.*\n)*)",
    re.MULTILINE,
)
_OPTION_RE = re.compile(r"^\s+:(\w+):\s*(.+)$", re.MULTILINE)

_DIRECTIVE_KIND_MAP = {
    "autofunction": Kind.FUNCTION,
    "autostruct": Kind.STRUCT,
    "autoclass": Kind.CLASS,
    "autounion": Kind.UNION,
    "autoenum": Kind.ENUMERATION,
    "autotype": Kind.TYPEDEF,
    "autovar": Kind.VARIABLE,
}

# (page slug, node kind, page title)
SECTIONS = (
    ("classes", Kind.CLASS, "Classes"),
    ("structures", Kind.STRUCT, "Structures"),
    ("unions", Kind.UNION, "Unions"),
    ("enumerations", Kind.ENUMERATION, "Enumerations"),
    ("types", Kind.TYPEDEF, "Types"),
    ("functions", Kind.FUNCTION, "Functions"),
    ("variables", Kind.VARIABLE, "Variables"),
)

_XREF_ROLE_RE = re.compile(r":(?:func|type|struct|union|enum|class|var|const|member):`([^`]+)`")
_BACKTICK_FUNC_RE = re.compile(r"(?<!\[)`([\w:~]+)\(\)`(?!\])")
_BACKTICK_IDENT_RE = re.compile(r"(?<!\[)`(\w[\w:]*)`(?!\])")


@dataclass
class SymbolEntry:
    name: str
    kind: Kind
    page_uri: str
    anchor: str
    group_title: str = ""


@dataclass
class SourceGroup:
    root: str
    nav_title: str = "API Reference"
    output_dir: str = "api"
    extensions: list[str] = field(default_factory=lambda: [".h"])
    exclude: list[str] = field(default_factory=list)
    tree_file: str = ""
    # Runtime state
    discovered: list[str] = field(default_factory=list)
    tree: object = None
    generated_pages: dict[str, str] = field(default_factory=dict)


class ApitreeConfig(MkDocsConfig):
    source_root = config_options.Type(str, default="")
    sources = config_options.Type(list, default=[])
    extensions = config_options.Type(list, default=[".h"])
    exclude = config_options.Type(list, default=[])
    output_dir = config_options.Type(str, default="api")
    nav_title = config_options.Type(str, default="API Reference")
    tree_file = config_options.Type(str, default="")
    heading_level = config_options.Type(int, default=2)
    members = config_options.Type(bool, default=True)
    auto_xref = config_options.Type(bool, default=True)
    language = config_options.Type(str, default="c")


def _discover_sources(root, extensions, exclude):
    """Source files under *root* (relative paths, sorted) with a wanted suffix."""
    suffixes = tuple(e.lower() if e.startswith(".") else f".{e.lower()}" for e in extensions)

    def excluded(rel):
        return any(fnmatch.fnmatch(os.path.basename(rel), p) or fnmatch.fnmatch(rel, p) for p in exclude)

    found = []
    for dirpath, _, fnames in os.walk(root):
        for fn in fnames:
            if not fn.lower().endswith(suffixes):
                continue
            rel = os.path.relpath(os.path.join(dirpath, fn), root)
            if not excluded(rel):
                found.append(rel)
    return sorted(found)


def _abspath(path, config_dir):
    if not path or os.path.isabs(path):
        return path
    return os.path.normpath(os.path.join(config_dir, path))


def _dir_url(uri):
    # api/functions.md -> api/functions, api/index.md -> api
    path = uri.removesuffix(".md")
    if os.path.basename(path) == "index":
        path = os.path.dirname(path)
    return path


def _relative_url(target, current, dir_urls):
    """Link from page *current* to page *target*, both docs-relative .md URIs."""
    if dir_urls:
        # api/functions.md is served from api/functions/
        rel = os.path.relpath(_dir_url(target), _dir_url(current))
        return rel.replace(os.sep, "/") + "/"
    return os.path.relpath(target, os.path.dirname(current)).replace(os.sep, "/")


class ApitreePlugin(BasePlugin[ApitreeConfig]):

    def __init__(self):
        super().__init__()
        self._groups = []
        self._pages = {}
        self._tmpfiles = []
        self._symbols = {}
        self._symbol_names = set()
        self._use_dir_urls = True

    # ── Symbol registry ──

    def _register(self, name, entry):
        if name not in self._symbols:
            self._symbols[name] = entry
            self._symbol_names.add(name)

    def _register_symbols(self, group):
        for slug, kind, _ in SECTIONS:
            page_uri = f"{group.output_dir}/{slug}.md"
            for node in public_nodes(group.tree, kind):
                entry = SymbolEntry(
                    name=node.name,
                    kind=kind,
                    page_uri=page_uri,
                    anchor=anchor_id(node),
                    group_title=group.nav_title,
                )
                self._register(node.name, entry)
                self._register(qualified_name(node), entry)
                for member in self._members(node):
                    mentry = SymbolEntry(
                        name=member.name,
                        kind=member.kind,
                        page_uri=page_uri,
                        anchor=entry.anchor if member.kind is Kind.CONSTANT else anchor_id(member),
                        group_title=group.nav_title,
                    )
                    self._register(qualified_name(member), mentry)
                    self._register(f"{node.name}.{member.name}", mentry)
                    self._register(member.name, mentry)

    def _members(self, node):
        if node.kind is Kind.ENUMERATION:
            return list(node.iter_children(Kind.CONSTANT))
        if node.kind not in (Kind.CLASS, Kind.STRUCT, Kind.UNION) or not self.config["members"]:
            return []
        out = []
        for kind in (Kind.FUNCTION, Kind.VARIABLE):
            out += [m for m in iter_public(node, kind) if m.scope != "private"]
        return out

    def _resolve_xref(self, name, current_page_uri=None):
        """URL of the page and anchor documenting *name* (``foo`` or ``foo()``)."""
        entry = self._symbols.get(name.strip().removesuffix("()"))
        if entry is None:
            return None
        if current_page_uri is None:
            return f"{entry.page_uri}#{entry.anchor}"
        if entry.page_uri == current_page_uri:
            return f"#{entry.anchor}"
        page = _relative_url(entry.page_uri, current_page_uri, self._use_dir_urls)
        return f"{page}#{entry.anchor}"

    def _link(self, name, label, current_page_uri, fallback):
        url = self._resolve_xref(name, current_page_uri)
        return f"[`{label}`]({url})" if url else fallback

    def _apply_xrefs(self, markdown, current_page_uri=None):
        # :func:`name` always loses its role, linked or not
        text = _XREF_ROLE_RE.sub(
            lambda m: self._link(m.group(1), m.group(1), current_page_uri, f"`{m.group(1)}`"),
            markdown,
        )
        if self.config["auto_xref"]:
            text = self._auto_xref_backticks(text, current_page_uri)
        return text

    def _auto_xref_backticks(self, text, current_page_uri=None):
        def link_call(m):
            return self._link(m.group(1), f"{m.group(1)}()", current_page_uri, m.group(0))

        def link_name(m):
            if m.group(1) not in self._symbol_names:
                return m.group(0)
            return self._link(m.group(1), m.group(1), current_page_uri, m.group(0))

        def prose(line):
            if line.lstrip().startswith("#"):
                return line
            return _BACKTICK_IDENT_RE.sub(link_name, _BACKTICK_FUNC_RE.sub(link_call, line))

        # odd chunks are fenced code blocks
        chunks = re.split(r"(^```.*?^```)", text, flags=re.MULTILINE | re.DOTALL)
        return "".join(
            chunk if i % 2 else "\n".join(prose(ln) for ln in chunk.split("\n"))
            for i, chunk in enumerate(chunks)
        )

    # ── Source groups ──

    def _group_from_entry(self, entry, config_dir, single=False):
        root = _abspath(entry["root"], config_dir)
        if single:
            nav_title, output_dir = self.config["nav_title"], self.config["output_dir"]
        else:
            basename = os.path.basename(root.rstrip("/").rstrip(os.sep)) or "src"
            nav_title = entry.get("nav_title", f"API ({basename})")
            output_dir = entry.get("output_dir", f"{self.config['output_dir']}/{basename}")
        return SourceGroup(
            root=root,
            nav_title=nav_title,
            output_dir=output_dir,
            extensions=entry.get("extensions", self.config["extensions"]),
            exclude=entry.get("exclude", self.config["exclude"]),
            tree_file=_abspath(entry.get("tree_file", ""), config_dir),
        )

    def _build_groups(self, config_dir):
        """One SourceGroup per ``sources`` entry, or a single one for ``source_root``."""
        raw = self.config.get("sources", [])
        if not raw:
            entry = {
                "root": self.config.get("source_root", "") or ".",
                "tree_file": self.config["tree_file"],
            }
            return [self._group_from_entry(entry, config_dir, single=True)]

        groups = []
        for i, entry in enumerate(raw):
            if isinstance(entry, str):
                entry = {"root": entry}
            if isinstance(entry, dict) and "root" in entry:
                groups.append(self._group_from_entry(entry, config_dir))
            else:
                log.error("apitree: sources[%d] has no root, skipping", i)
        return groups

    def _load_group_tree(self, group):
        if group.tree_file and os.path.isfile(group.tree_file):
            try:
                tree = load_tree(group.tree_file)
                log.info("apitree: [%s] merging into %s", group.nav_title, group.tree_file)
                return tree
            except RuntimeError as exc:
                log.error("apitree: %s, starting a fresh tree", exc)
        return new_tree()

    def _scan_group(self, group):
        group.discovered = []
        group.generated_pages = {}
        group.tree = self._load_group_tree(group)
        if not os.path.isdir(group.root):
            log.error("apitree: source root missing: %s", group.root)
            return
        group.discovered = _discover_sources(group.root, group.extensions, group.exclude)
        log.info("apitree: [%s] %d files in %s", group.nav_title, len(group.discovered), group.root)

        for rel in group.discovered:
            abspath = os.path.normpath(os.path.join(group.root, rel))
            try:
                scan_file(abspath, group.tree)
            except OSError as exc:
                log.error("apitree: unable to read %s: %s", abspath, exc)

        if group.tree_file:
            try:
                save_tree(group.tree, group.tree_file)
            except OSError as exc:
                log.error("apitree: unable to write %s: %s", group.tree_file, exc)

        for slug, kind, _ in SECTIONS:
            if public_nodes(group.tree, kind):
                uri = f"{group.output_dir}/{slug}.md"
                group.generated_pages[uri] = slug
                self._pages[uri] = (slug, group)

        if group.generated_pages:
            idx = f"{group.output_dir}/index.md"
            group.generated_pages[idx] = "__INDEX__"
            self._pages[idx] = ("__INDEX__", group)

        self._register_symbols(group)

    def _build_nav_tree(self, group):
        nav = [{"Overview": f"{group.output_dir}/index.md"}]
        for slug, _, title in SECTIONS:
            uri = f"{group.output_dir}/{slug}.md"
            if uri in group.generated_pages:
                nav.append({title: uri})
        return nav

    def _inject_nav(self, config):
        top_title = self.config["nav_title"]
        groups = [g for g in self._groups if g.generated_pages]
        if not groups:
            return

        if len(self._groups) == 1:
            section = {top_title: self._build_nav_tree(groups[0])}
        else:
            section = {top_title: [{g.nav_title: self._build_nav_tree(g)} for g in groups]}

        nav = config.get("nav")
        if nav is None:
            config["nav"] = [section]
            return
        for i, item in enumerate(nav):
            if isinstance(item, dict) and top_title in item:
                nav[i] = section
                return
        nav.append(section)

    # ── MkDocs lifecycle hooks ──

    def on_config(self, config, **kwargs):
        config_dir = os.path.dirname(config.get("config_file_path", "") or "") or os.getcwd()

        self._pages.clear()
        self._tmpfiles.clear()
        self._symbols.clear()
        self._symbol_names.clear()
        self._groups = self._build_groups(config_dir)

        self._use_dir_urls = config.get("use_directory_urls", True)

        for g in self._groups:
            self._scan_group(g)

        self._inject_nav(config)

        nsym = len(self._symbols)
        if nsym:
            log.info("apitree: symbol registry built, %d symbols indexed", nsym)

        return config

    def _generated_file(self, config, uri):
        # File.generated needs MkDocs 1.6; older releases get an empty
        # placeholder in docs_dir that on_post_build removes again
        if hasattr(File, "generated"):
            return File.generated(config, uri, content="")
        placeholder = os.path.join(config["docs_dir"], uri)
        os.makedirs(os.path.dirname(placeholder), exist_ok=True)
        with open(placeholder, "w", encoding="utf-8"):
            pass
        self._tmpfiles.append(placeholder)
        return File(uri, config["docs_dir"], config["site_dir"], config.get("use_directory_urls", True))

    def on_files(self, files, *, config, **kwargs):
        for uri in sorted(self._pages):
            page_file = self._generated_file(config, uri)
            page_file.edit_uri = None
            files.append(page_file)
        return files

    def on_page_markdown(self, markdown, *, page, config, files, **kwargs):
        src_uri = getattr(page.file, "src_uri", None) or page.file.src_path
        generated = self._pages.get(src_uri)
        if generated is None:
            md = _DIRECTIVE_RE.sub(lambda m: self._handle_directive(m, page), markdown)
        elif generated[0] == "__INDEX__":
            md = self._mk_index(generated[1])
        else:
            md = self._mk_section(generated[1], generated[0])
        return self._apply_xrefs(md, src_uri)

    def on_post_build(self, *, config, **kwargs):
        docs_dir = os.path.normpath(config["docs_dir"])
        emptied = set()
        for placeholder in self._tmpfiles:
            if os.path.exists(placeholder):
                os.remove(placeholder)
            emptied.add(os.path.dirname(placeholder))
        # prune now-empty output directories, deepest first, never docs_dir
        for d in sorted(emptied, key=len, reverse=True):
            while os.path.normpath(d) != docs_dir and os.path.isdir(d) and not os.listdir(d):
                os.rmdir(d)
                d = os.path.dirname(d)
        self._tmpfiles.clear()

    # ── Page builders ──

    def _rcfg(self):
        return RenderConfig(
            heading_level=self.config["heading_level"],
            members=self.config["members"],
            language=self.config["language"],
        )

    def _mk_index(self, group):
        lines = [f"# {group.nav_title}", ""]
        total = sum(len(public_nodes(group.tree, kind)) for _, kind, _ in SECTIONS)
        nfiles = len(group.discovered)
        lines += [
            f"This reference covers {total} documented symbols "
            f"from {nfiles} source {'file' if nfiles == 1 else 'files'}.",
            "",
        ]

        for slug, kind, title in SECTIONS:
            nodes = public_nodes(group.tree, kind)
            if not nodes:
                continue
            lines += [f"## [{title}]({slug}.md)", "", "| Name | Description |", "|---|---|"]
            for node in nodes:
                desc = summary_line(node).replace("|", "\\|")
                lines.append(f"| [`{node.name}`]({slug}.md#{anchor_id(node)}) | {desc} |")
            lines.append("")

        return "\n".join(lines)

    def _mk_section(self, group, slug):
        for s, kind, title in SECTIONS:
            if s == slug:
                break
        else:
            return f"<!-- apitree: unknown section '{slug}' -->\n"
        cfg = self._rcfg()
        body = render_section(group.tree, kind, cfg)
        return f"# {title}\n\n" + body

    def _find_group(self, name):
        for g in self._groups:
            if name in (g.nav_title, os.path.basename(g.root.rstrip(os.sep))):
                return g
        return None

    def _handle_directive(self, match, page):
        directive = match.group("directive")
        opts = {}
        for m in _OPTION_RE.finditer(match.group("body")):
            opts[m.group(1)] = m.group(2).strip()

        if "group" in opts:
            group = self._find_group(opts["group"])
            if group is None:
                return f"<!-- apitree: unknown group '{opts['group']}' -->\n"
            groups = [group]
        else:
            groups = self._groups
        if not groups:
            return f"<!-- apitree: no sources configured for apitree:{directive} -->\n"

        cfg = self._rcfg()
        if "heading_level" in opts:
            try:
                cfg.heading_level = int(opts["heading_level"])
            except ValueError:
                log.warning("apitree: bad :heading_level: %r on %s", opts["heading_level"], page.file.src_path)
        if "members" in opts:
            cfg.members = opts["members"].lower() in ("true", "yes", "1")

        if directive == "autodoc":
            parts = []
            if opts.get("title"):
                parts += [f"{'#' * max(1, cfg.heading_level - 1)} {opts['title']}", ""]
            for g in groups:
                for _, kind, _ in SECTIONS:
                    if public_nodes(g.tree, kind):
                        parts += [render_section(g.tree, kind, cfg), ""]
            return "\n".join(parts)

        name = opts.get("name", "")
        if not name:
            return f"<!-- apitree: missing :name: for apitree:{directive} -->\n"
        kind = _DIRECTIVE_KIND_MAP.get(directive)
        out = ""
        for g in groups:
            out = render_single(g.tree, name, kind=kind, cfg=cfg)
            if not out.startswith("<!-- apitree:"):
                return out
        return out
