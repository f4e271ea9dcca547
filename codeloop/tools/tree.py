"""Tree tool for rendering a directory structure."""

import asyncio
import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from codeloop.logging import get_logger
from codeloop.tools.glob import IGNORED_DIR_NAMES
from codeloop.tools.registry import Tool, ToolContext, ToolResult

log = get_logger(__name__)


@dataclass
class TreeNode:
    name: str
    is_dir: bool
    size: int = 0
    children: list["TreeNode"] = field(default_factory=list)


def parse_gitignore(root: Path) -> list[str]:
    """Read ``.gitignore`` patterns at ``root``; comments and blanks dropped."""
    gitignore = root / ".gitignore"
    if not gitignore.is_file():
        return []
    patterns: list[str] = []
    for line in gitignore.read_text(encoding="utf-8", errors="replace").splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            patterns.append(stripped)
    return patterns


def _is_ignored(relative: str, name: str, is_dir: bool, patterns: list[str]) -> bool:
    for pattern in patterns:
        dir_only = pattern.endswith("/")
        cleaned = pattern.strip("/")
        if dir_only and not is_dir:
            continue
        if fnmatch.fnmatch(name, cleaned) or fnmatch.fnmatch(relative, cleaned):
            return True
    return False


def format_size(size: int) -> str:
    """Format a byte count as B, KB or MB."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def _scan(root: Path, max_depth: int) -> tuple[TreeNode, int, int, int]:
    """Walk ``root`` and build the visible tree plus whole-tree totals."""
    patterns = parse_gitignore(root)
    tree = TreeNode(name=root.name or str(root), is_dir=True)
    nodes: dict[str, TreeNode] = {"": tree}
    total_files = total_dirs = total_size = 0

    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = os.path.relpath(dirpath, root)
        rel_dir = "" if rel_dir == "." else Path(rel_dir).as_posix()
        depth = 0 if not rel_dir else len(rel_dir.split("/"))

        kept_dirs = []
        for name in sorted(dirnames):
            relative = f"{rel_dir}/{name}" if rel_dir else name
            if name.startswith(".") or name in IGNORED_DIR_NAMES:
                continue
            if _is_ignored(relative, name, True, patterns):
                continue
            kept_dirs.append(name)
            total_dirs += 1
            if depth + 1 <= max_depth and rel_dir in nodes:
                node = TreeNode(name=name, is_dir=True)
                nodes[rel_dir].children.append(node)
                nodes[relative] = node
        dirnames[:] = kept_dirs

        for name in sorted(filenames):
            relative = f"{rel_dir}/{name}" if rel_dir else name
            if name.startswith(".") or _is_ignored(relative, name, False, patterns):
                continue
            try:
                size = (Path(dirpath) / name).stat().st_size
            except OSError:
                size = 0
            total_files += 1
            total_size += size
            if depth + 1 <= max_depth and rel_dir in nodes:
                nodes[rel_dir].children.append(TreeNode(name=name, is_dir=False, size=size))

    return tree, total_files, total_dirs, total_size


def render_tree(node: TreeNode, prefix: str = "", is_last: bool = True, is_root: bool = True) -> list[str]:
    """Render a tree with box-drawing connectors, directories first."""
    if is_root:
        lines = [f"{node.name}/"]
    else:
        connector = "└── " if is_last else "├── "
        suffix = "/" if node.is_dir else f" ({format_size(node.size)})"
        lines = [f"{prefix}{connector}{node.name}{suffix}"]

    children = sorted(node.children, key=lambda c: (not c.is_dir, c.name))
    for index, child in enumerate(children):
        child_is_last = index == len(children) - 1
        child_prefix = "" if is_root else prefix + ("    " if is_last else "│   ")
        lines.extend(render_tree(child, child_prefix, child_is_last, False))
    return lines


class TreeTool(Tool):
    """Show a directory tree."""

    name = "tree"
    description = (
        "Show directory structure as a tree with file sizes and counts. "
        "Respects .gitignore patterns. Useful for understanding project layout in a single call."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Directory to list. Defaults to the working directory.",
            },
            "depth": {
                "type": "number",
                "description": "Max depth to traverse (default: 3)",
            },
        },
        "required": [],
    }

    async def execute(
        self,
        ctx: ToolContext,
        path: str | None = None,
        depth: int | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        try:
            root = ctx.resolve_path(path) if path else ctx.cwd
            if not root.is_dir():
                return ToolResult(success=False, error=f"Directory not found: {root}")

            max_depth = 3 if depth is None else int(depth)
            tree, total_files, total_dirs, total_size = await asyncio.to_thread(
                _scan, root, max_depth
            )
            data = {
                "root": str(root),
                "depth": max_depth,
                "total_files": total_files,
                "total_dirs": total_dirs,
                "total_size": total_size,
            }

            if max_depth == 0:
                summary = (
                    f"{root.name}/ ({total_files} files, {total_dirs} dirs, "
                    f"{format_size(total_size)})"
                )
                return ToolResult(success=True, output=summary, data=data)

            if not tree.children:
                return ToolResult(success=True, output=f"{root.name}/ (empty)", data=data)

            rendered = "\n".join(render_tree(tree))
            summary = f"{total_files} files, {total_dirs} directories, {format_size(total_size)}"
            return ToolResult(success=True, output=f"{rendered}\n\n{summary}", data=data)

        except Exception as e:
            log.error("Tree failed", path=path, error=str(e))
            return ToolResult(
                success=False,
                error=str(e),
            )
