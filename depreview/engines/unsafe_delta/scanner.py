"""Count ``unsafe`` usage in Rust source with tree-sitter.

Counted positions:

* ``unsafe fn`` at module level (functions) or inside an ``impl`` / ``trait``
  body (methods);
* ``unsafe impl`` and ``unsafe trait`` items;
* expressions evaluated inside an ``unsafe`` block or ``unsafe fn`` body.
  Paths and literals are not expressions here, macro invocations are.

Items carrying ``#[test]`` or ``#[cfg(test)]`` are skipped together with
everything nested in them. Syntax errors do not abort the scan; whatever
tree-sitter recovered is counted.
"""

from __future__ import annotations

import re
from pathlib import Path

import structlog
import tree_sitter_rust as tsr
from tree_sitter import Language, Node, Parser

from depreview.engines.unsafe_delta.models import UnsafeCounters

log = structlog.get_logger("depreview.unsafe_delta")

_RUST_LANGUAGE = Language(tsr.language())

_TEST_ATTRIBUTE_RE = re.compile(r"#\[(?:(?:\w+::)*test|cfg\(test\))\]")
_TRIVIA = {"line_comment", "block_comment"}


def _is_test_attribute(node: Node) -> bool:
    text = "".join(node.text.decode(errors="replace").split())
    return _TEST_ATTRIBUTE_RE.fullmatch(text) is not None


def _non_test_children(node: Node) -> list[Node]:
    """Children of *node*, minus attributes and the items a test attribute marks."""
    children: list[Node] = []
    skip_next = False
    for child in node.children:
        if child.type == "attribute_item":
            skip_next = skip_next or _is_test_attribute(child)
            continue
        if child.type in _TRIVIA:
            continue
        if skip_next:
            skip_next = False
            continue
        children.append(child)
    return children


def _has_token(node: Node, token: str) -> bool:
    return any(child.type == token for child in node.children)


def _is_unsafe_fn(node: Node) -> bool:
    for child in node.children:
        if child.type == "function_modifiers":
            return _has_token(child, "unsafe")
    return False


def scan_source(source: bytes | str) -> UnsafeCounters:
    """Count unsafe usage in one compilation unit."""
    if isinstance(source, str):
        source = source.encode()
    tree = Parser(_RUST_LANGUAGE).parse(source)

    functions = expressions = impls = traits = methods = 0
    # (node, inside an unsafe scope, enclosing impl/trait body)
    stack: list[tuple[Node, bool, bool]] = [(tree.root_node, False, False)]
    while stack:
        node, in_unsafe, in_impl_or_trait = stack.pop()
        child_unsafe, child_impl_or_trait = in_unsafe, in_impl_or_trait

        if node.type == "function_item":
            if _is_unsafe_fn(node):
                if in_impl_or_trait:
                    methods += 1
                else:
                    functions += 1
                child_unsafe = True
            # Functions nested in a method body are free functions again.
            child_impl_or_trait = False
        elif node.type == "impl_item":
            if _has_token(node, "unsafe"):
                impls += 1
            child_impl_or_trait = True
        elif node.type == "trait_item":
            if _has_token(node, "unsafe"):
                traits += 1
            child_impl_or_trait = True
        elif node.type == "unsafe_block":
            child_unsafe = True
        elif in_unsafe and node.is_named and (
            node.type.endswith("_expression") or node.type == "macro_invocation"
        ):
            expressions += 1

        for child in reversed(_non_test_children(node)):
            stack.append((child, child_unsafe, child_impl_or_trait))

    return UnsafeCounters(
        functions=functions,
        expressions=expressions,
        impls=impls,
        traits=traits,
        methods=methods,
    )


def scan_file(path: Path) -> UnsafeCounters | None:
    """Scan a ``.rs`` file; None for other files and unreadable or non-UTF-8 ones."""
    if path.suffix != ".rs" or not path.is_file():
        return None
    try:
        data = path.read_bytes()
        data.decode("utf-8")
    except (OSError, UnicodeDecodeError):
        log.debug("unsafe_delta.unparsable", path=str(path))
        return None
    return scan_source(data)
