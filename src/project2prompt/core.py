"""
Core logic for project2prompt package.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import stat
import weakref
from collections import deque
from dataclasses import dataclass, field
from itertools import chain
from typing import Deque, Dict, List, Mapping, Optional

import pathspec
import pyperclip
from colorama import Style

logger = logging.getLogger(__name__)


# Exceptions
class Project2PromptError(Exception): ...
class ConfigError(Project2PromptError): ...
class NodeLoadError(Project2PromptError): ...
class DirectoryListError(Project2PromptError): ...
class ClipboardError(Project2PromptError): ...


# Settings
DEFAULT_PER_FILE_BYTE_LIMIT = 8192
DEFAULT_SLOWDOWN_MS = 40
DEFAULT_REFRESH_INTERVAL = 1 / 30
DEFAULT_SCREEN_MARGIN = 3
SLOWDOWN_ENV = "PROJECT2PROMPT_SLOWDOWN_MS"


@dataclass
class Settings:
    per_file_byte_limit: int = DEFAULT_PER_FILE_BYTE_LIMIT
    # Delay before each node load so the live view visibly animates; 0 disables.
    slowdown_ms: int = DEFAULT_SLOWDOWN_MS
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    screen_margin: int = DEFAULT_SCREEN_MARGIN

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides
    ) -> "Settings":
        env = os.environ if environ is None else environ
        raw = env.get(SLOWDOWN_ENV)
        if raw is not None and "slowdown_ms" not in overrides:
            try:
                slowdown = int(raw)
            except ValueError:
                raise ConfigError(f"{SLOWDOWN_ENV} must be an integer, got '{raw}'") from None
            if slowdown < 0:
                raise ConfigError(f"{SLOWDOWN_ENV} must not be negative, got {slowdown}")
            overrides["slowdown_ms"] = slowdown
        return cls(**overrides)


# Tree model
@dataclass(eq=False)
class TreeNode:
    path: str
    filename: str
    is_dir: bool
    byte_size: Optional[int] = None
    byte_size_total: Optional[int] = None
    content: Optional[str] = None
    content_is_trimmed: bool = False
    # None until the directory is expanded, [] once known to be empty.
    children: Optional[List["TreeNode"]] = None
    _parent: Optional["weakref.ReferenceType[TreeNode]"] = field(
        default=None, init=False, repr=False
    )

    @property
    def parent(self) -> Optional["TreeNode"]:
        return self._parent() if self._parent is not None else None

    @property
    def size(self) -> int:
        if self.byte_size_total is not None:
            return self.byte_size_total
        return self.byte_size if self.byte_size is not None else 0

    def attach(self, child: "TreeNode") -> None:
        child._parent = weakref.ref(self)
        if self.children is None:
            self.children = []
        self.children.append(child)


@dataclass
class TreeContext:
    processed: int = 0
    ignored: int = 0
    queued: int = 0


# Relevance filter
MAC_IGNORES = [".DS_Store"]
JS_IGNORES = ["node_modules", "package-lock.json", "yarn.lock", "deno.lock"]
PYTHON_IGNORES = ["__pycache__", ".venv"]
EDITOR_IGNORES = [".vscode", ".idea", ".swp"]
GIT_IGNORES = [".git", ".gitignore"]
ARTIFACT_IGNORES = ["dist", "build", "out", "target", "bin", "coverage", "vendor"]

IGNORED_NAMES = frozenset(
    chain(MAC_IGNORES, JS_IGNORES, PYTHON_IGNORES, EDITOR_IGNORES, GIT_IGNORES, ARTIFACT_IGNORES)
)
# Literal names only: for a single path segment a match means exact equality.
IGNORE_SPEC = pathspec.PathSpec.from_lines("gitwildmatch", sorted(IGNORED_NAMES))


def is_relevant(name: str) -> bool:
    """Return False iff *name* (a single path segment) is in the ignore set."""
    return not IGNORE_SPEC.match_file(name)


# Formatting helpers
_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(num: int) -> str:
    size = float(num)
    unit = 0
    while size >= 1024 and unit < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit += 1
    return f"{size:.1f}{_SIZE_UNITS[unit]}"


def dim(text: str) -> str:
    return f"{Style.DIM}{text}{Style.NORMAL}"


def _plain(text: str) -> str:
    return text


# Node loading
def _read_head(path: str, limit: int) -> bytes:
    try:
        with open(path, "rb") as fh:
            return fh.read(limit + 1)
    except OSError as e:
        raise NodeLoadError(f"Could not read '{path}': {e}") from e


async def load_node(path: str, settings: Settings) -> TreeNode:
    """
    Stat *path* and build its node.

    Relevant files get their content read; anything past
    ``settings.per_file_byte_limit`` bytes is cut off and the node is flagged
    as trimmed. The cut is byte-accurate, so a multi-byte character at the
    boundary decodes to a replacement character.
    """
    await asyncio.sleep(settings.slowdown_ms / 1000 if settings.slowdown_ms else 0)
    try:
        info = os.lstat(path)
    except OSError as e:
        raise NodeLoadError(f"Could not stat '{path}': {e}") from e

    filename = os.path.basename(path.rstrip(os.sep)) or path
    is_dir = stat.S_ISDIR(info.st_mode)
    node = TreeNode(path=path, filename=filename, is_dir=is_dir)
    if is_dir:
        return node

    node.byte_size = info.st_size
    # fifos, sockets and links to directories keep a node but no content
    if is_relevant(filename) and os.path.isfile(path):
        limit = settings.per_file_byte_limit
        raw = _read_head(path, limit)
        node.content_is_trimmed = len(raw) > limit
        if node.content_is_trimmed:
            raw = raw[:limit]
        node.content = raw.decode("utf-8", errors="replace")
    return node


# Tree walking
async def _list_dir(path: str) -> List[str]:
    await asyncio.sleep(0)
    try:
        return os.listdir(path)
    except OSError as e:
        raise DirectoryListError(f"Could not list directory '{path}': {e}") from e


def recompute_byte_size_total(node: Optional[TreeNode]) -> None:
    """Recompute totals from *node* up to the root; full sums, never deltas."""
    while node is not None:
        node.byte_size_total = sum(child.size for child in node.children or ())
        node = node.parent


async def build_tree(root: TreeNode, ctx: TreeContext, settings: Settings) -> None:
    """
    Expand *root* breadth-first, attaching every relevant descendant.

    Each child is attached and the totals recomputed before the next
    suspension point, so a concurrent reader never sees a half-applied step.
    The root itself is never run through the relevance filter.
    """
    logger.debug("Walking %s", root.path)
    queue: Deque[TreeNode] = deque([root])
    while queue:
        node = queue.popleft()
        ctx.queued = len(queue)
        ctx.processed += 1
        if not node.is_dir:
            continue

        names = await _list_dir(node.path)
        node.children = []
        for name in names:
            child = await load_node(os.path.join(node.path, name), settings)
            if not is_relevant(child.filename):
                ctx.ignored += 1
                logger.debug("Ignored %s", child.path)
                continue
            node.attach(child)
            recompute_byte_size_total(node)
            if child.is_dir:
                queue.append(child)
                ctx.queued = len(queue)
        node.children.sort(key=lambda n: n.path)
        # settles empty directories at 0
        recompute_byte_size_total(node)

    logger.debug(
        "Walk done: %d processed, %d ignored, %s total",
        ctx.processed,
        ctx.ignored,
        format_bytes(root.size),
    )


def linearize_tree(root: TreeNode) -> List[TreeNode]:
    nodes: List[TreeNode] = []
    queue: Deque[TreeNode] = deque([root])
    while queue:
        current = queue.popleft()
        nodes.append(current)
        if current.children:
            queue.extend(current.children)
    return nodes


# Rendering
def render_tree(node: TreeNode, prefix: str = "", color: bool = False) -> str:
    """
    Render *node* and its descendants with ``├──``/``└──`` connectors.

    Safe on a partially built tree: unexpanded directories render as leaves.
    With *color*, connectors and sizes are dimmed; names never are.
    """
    paint = dim if color else _plain
    total = node.size
    size = paint(f" ({format_bytes(total)})") if total else ""
    # the filesystem root is named "/" already
    slash = "/" if node.is_dir and not node.filename.endswith(os.sep) else ""
    lines = [f"{node.filename}{slash}{size}"]

    children = list(node.children or ())
    for idx, child in enumerate(children):
        last = idx == len(children) - 1
        connector = paint("└── " if last else "├── ")
        extension = "    " if last else paint("│   ")
        lines.append(f"{prefix}{connector}{render_tree(child, prefix + extension, color)}")
    return "\n".join(lines)


_BACKTICK_RUN = re.compile(r"`+")


def code_fence_for(content: str) -> str:
    longest = max((len(run) for run in _BACKTICK_RUN.findall(content)), default=0)
    return "`" * max(3, longest + 1)


def _language_for(filename: str) -> str:
    _, dot, ext = filename.rpartition(".")
    return ext if dot else ""


def _relative_path(node: TreeNode, root: TreeNode) -> str:
    rel = node.path[len(root.path):].lstrip(os.sep)
    return rel or node.filename


def render_code_block(node: TreeNode, root: TreeNode) -> Optional[str]:
    if not node.content:
        return None
    size = f" ({format_bytes(node.byte_size)})" if node.byte_size else ""
    trimmed = " (trimmed)" if node.content_is_trimmed else ""
    fence = code_fence_for(node.content)
    header = f"{_relative_path(node, root)}{size}{trimmed}"
    return f"{header}\n{fence}{_language_for(node.filename)}\n{node.content}\n{fence}"


def render_prompt(root: TreeNode) -> str:
    """Plain tree, a blank line, then one fenced block per file with content."""
    blocks = [render_code_block(node, root) for node in linearize_tree(root)]
    sections: List[str] = [render_tree(root, "", False)]
    sections.extend(block for block in blocks if block)
    return "\n\n".join(sections)


def summarize(ctx: TreeContext) -> Dict[str, int]:
    return {"processed": ctx.processed, "ignored": ctx.ignored, "queued": ctx.queued}


# Clipboard sink
async def copy_to_clipboard(text: str) -> None:
    try:
        await asyncio.get_running_loop().run_in_executor(None, pyperclip.copy, text)
    except pyperclip.PyperclipException as e:
        raise ClipboardError(f"Could not write to the clipboard: {e}") from e
    logger.debug("Copied %d characters to the clipboard", len(text))
