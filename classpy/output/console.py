"""
classpy Console Output
=======================

Rich-powered terminal display of an inspection: a metadata panel followed
by the component tree rendered as a :class:`rich.tree.Tree`.  Subtrees
below the requested depth are collapsed into a single "N more" line, which
mirrors how an interactive viewer expands children lazily.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from typing import Optional

from rich.markup import escape
from rich.panel import Panel
from rich.tree import Tree

from shared.console import ClasspyConsole

from classpy.core.component import Component
from classpy.core.models import ArtifactInfo, InspectionResult


def component_label(node: Component, *, show_offsets: bool = True) -> str:
    """Rich markup label for one node: name, description and byte range."""
    label = f"[classpy.name]{escape(node.name)}[/classpy.name]"
    desc = node.description
    if desc:
        label += f" [classpy.desc]{escape(desc)}[/classpy.desc]"
    if show_offsets:
        label += (
            f" [classpy.range]@0x{node.offset:x}+{node.length}[/classpy.range]"
        )
    return label


def build_tree(
    root: Component,
    *,
    max_depth: Optional[int] = None,
    show_offsets: bool = True,
) -> Tree:
    """Convert a component subtree to a :class:`rich.tree.Tree`.

    Args:
        root: Subtree root.
        max_depth: Levels of children to expand; ``None`` for all.
        show_offsets: Append ``@offset+length`` to each label.
    """
    tree = Tree(component_label(root, show_offsets=show_offsets))
    _add_children(tree, root, max_depth, show_offsets)
    return tree


def _add_children(
    branch: Tree, node: Component, depth: Optional[int], show_offsets: bool
) -> None:
    if not node.children:
        return
    if depth is not None and depth <= 0:
        branch.add(f"[classpy.dim]... {len(node.children)} more[/classpy.dim]")
        return
    next_depth = None if depth is None else depth - 1
    for kid in node.children:
        sub = branch.add(component_label(kid, show_offsets=show_offsets))
        _add_children(sub, kid, next_depth, show_offsets)


class TreeConsoleOutput:
    """Terminal display for inspection results.

    Usage::

        output = TreeConsoleOutput()
        output.display(result, max_depth=3)
    """

    def __init__(self, console: ClasspyConsole | None = None) -> None:
        self._console: ClasspyConsole = console or ClasspyConsole()

    def display(
        self,
        result: InspectionResult,
        *,
        max_depth: Optional[int] = 3,
        show_offsets: bool = True,
    ) -> None:
        """Display the metadata panel and, if decoding succeeded, the tree."""
        self._console.banner()
        self.display_header(result)
        if result.failure is not None:
            self._console.error(escape(str(result.failure)))
            return
        self._console.section("Component Tree")
        self._console.print(
            build_tree(result.root, max_depth=max_depth, show_offsets=show_offsets)
        )
        self._console.divider()

    def display_header(self, result: InspectionResult) -> None:
        info: ArtifactInfo = result.info
        lines: list[str] = [
            f"[bold]File:[/bold]       {escape(info.path)}",
            f"[bold]Size:[/bold]       {info.size:,} bytes",
            f"[bold]Format:[/bold]     {info.format.value} ({escape(info.file_type)})",
        ]
        if info.md5:
            lines.append(f"[bold]MD5:[/bold]        {info.md5}")
        if info.sha256:
            lines.append(f"[bold]SHA-256:[/bold]    {info.sha256}")
        if result.root is not None:
            lines.append(
                f"[bold]Components:[/bold] {result.node_count:,} "
                f"in {result.elapsed_seconds * 1000:.1f} ms"
            )
        self._console.rich.print(
            Panel(
                "\n".join(lines),
                title="[bold bright_cyan]Artifact[/bold bright_cyan]",
                border_style="bright_cyan",
                padding=(0, 2),
            )
        )
        self._console.blank()
