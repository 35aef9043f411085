#!/usr/bin/env python3
"""
Update an XML documentation file from C/C++ sources.

Usage:
    apitree docs/api.xml include/widget.h src/widget.c
    apitree docs/api.xml include/ --markdown docs/api.md --title "Widget API"
    python -m mkdocs_apitree.cli api.xml src/ --ext .h .hpp

An existing XML file is loaded first and the scanned declarations are merged
into it, so running the updater again over the same sources is a no-op.
"""

import argparse
import os
import sys

from .renderer import RenderConfig, public_nodes, render_section
from .scanner import scan_file
from .tree import Kind, load_tree, new_tree, save_tree

SECTIONS = (
    (Kind.CLASS, "Classes"),
    (Kind.STRUCT, "Structures"),
    (Kind.UNION, "Unions"),
    (Kind.ENUMERATION, "Enumerations"),
    (Kind.TYPEDEF, "Types"),
    (Kind.FUNCTION, "Functions"),
    (Kind.VARIABLE, "Variables"),
)


def collect_sources(paths, exts):
    files = []
    for target in paths:
        if os.path.isfile(target):
            files.append(target)
        elif os.path.isdir(target):
            for dirpath, _, fnames in os.walk(target):
                for fn in sorted(fnames):
                    _, ext = os.path.splitext(fn)
                    if ext.lower() in exts:
                        files.append(os.path.join(dirpath, fn))
        else:
            raise FileNotFoundError(f"{target} not found")
    return files


def render_markdown(tree, title):
    cfg = RenderConfig(heading_level=3)
    parts = [f"# {title}", ""]
    for kind, label in SECTIONS:
        if public_nodes(tree, kind):
            parts += [render_section(tree, kind, cfg, title=label), ""]
    return "\n".join(parts)


def main(argv=None):
    p = argparse.ArgumentParser(description="Scan C/C++ sources into an XML documentation file")
    p.add_argument("xmlfile", help="Documentation file to create or update")
    p.add_argument("sources", nargs="+", help="Source files or directories to scan")
    p.add_argument(
        "--ext",
        nargs="+",
        default=[".h", ".hpp", ".c", ".cpp", ".cxx", ".cc"],
        help="File extensions to scan in directories (default: .h .hpp .c .cpp .cxx .cc)",
    )
    p.add_argument("--markdown", metavar="OUT", help="Also write the reference as Markdown")
    p.add_argument("--title", default="API Reference", help="Title of the Markdown page")
    args = p.parse_args(argv)

    exts = set(e if e.startswith(".") else f".{e}" for e in args.ext)

    try:
        if os.path.exists(args.xmlfile):
            tree = load_tree(args.xmlfile)
        else:
            tree = new_tree()
        files = collect_sources(args.sources, exts)
        for fpath in files:
            scan_file(fpath, tree)
            print(f"scanned: {fpath}")
        save_tree(tree, args.xmlfile)
        if args.markdown:
            with open(args.markdown, "w", encoding="utf-8") as f:
                f.write(render_markdown(tree, args.title))
    except (OSError, RuntimeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)

    print(f"\n{len(files)} files scanned into {args.xmlfile}")


if __name__ == "__main__":
    main()
