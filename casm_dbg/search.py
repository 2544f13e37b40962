"""
search.py  –  Resumable path search over ``GraphMappings``.

The reference graph is bipartite: ``Value`` nodes (memory cells) connect only
to ``Step`` nodes (executed instructions) and vice versa.  A *path* starts at
``Value(source)`` and alternates kinds until it reaches ``Value(target)``;
read left to right it is a chain of instructions through which the source
cell may have influenced the target cell.

One traversal routine serves every strategy; the strategy is the container
that holds in-progress paths:

    BfsFrontier  (FIFO)  – shortest connecting paths first
    DfsFrontier  (LIFO)  – follows the newest branch; finds *a* path quickly

``PathSearch`` holds the frontier between calls, so ``next_path()`` can be
called repeatedly to enumerate further solutions.

Cycle control
-------------
``VisitPolicy.PATH`` (the default) only rejects nodes already on the path
being extended.  This enumerates every simple path, at the price of a
frontier that can grow combinatorially on dense graphs.
``VisitPolicy.GLOBAL`` admits each node once for the whole search: it
always terminates quickly but reports at most one path per reachable
target and may miss shorter alternatives under DFS.
"""

from __future__ import annotations

import abc
import enum
import logging
from collections import deque
from dataclasses import dataclass
from typing import (
    Deque,
    Iterable,
    Iterator,
    List,
    Optional,
    Set,
    Tuple,
    Type,
    Union,
)

from .mappings import GraphMappings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
#  Nodes and paths
# ═══════════════════════════════════════════════════════════════════════

class NodeKind(enum.Enum):
    STEP = "step"
    VALUE = "value"


@dataclass(frozen=True, slots=True)
class NodeId:
    """A node of the bipartite graph: ``Step(index)`` or ``Value(address)``."""
    kind: NodeKind
    index: int

    @classmethod
    def step(cls, index: int) -> "NodeId":
        return cls(NodeKind.STEP, index)

    @classmethod
    def value(cls, index: int) -> "NodeId":
        return cls(NodeKind.VALUE, index)

    @property
    def is_step(self) -> bool:
        return self.kind is NodeKind.STEP

    @property
    def is_value(self) -> bool:
        return self.kind is NodeKind.VALUE

    def __repr__(self) -> str:
        return f"{self.kind.name.capitalize()}({self.index})"


Path = Tuple[NodeId, ...]


def neighbors(mappings: GraphMappings, node: NodeId) -> List[NodeId]:
    """Adjacent nodes of *node*, in ascending index order."""
    if node.kind is NodeKind.STEP:
        return [NodeId.value(v) for v in sorted(mappings.values_of(node.index))]
    if node.kind is NodeKind.VALUE:
        return [NodeId.step(s) for s in sorted(mappings.steps_of(node.index))]
    raise TypeError(f"unknown node kind: {node.kind!r}")


# ═══════════════════════════════════════════════════════════════════════
#  Frontier strategies
# ═══════════════════════════════════════════════════════════════════════

class Frontier(abc.ABC):
    """Container of in-progress paths; its pop order is the search order."""

    @abc.abstractmethod
    def push(self, path: Path) -> None: ...

    @abc.abstractmethod
    def pop(self) -> Path:
        """Remove and return the next path; ``IndexError`` when empty."""

    @abc.abstractmethod
    def __len__(self) -> int: ...

    def extend(self, paths: Iterable[Path]) -> None:
        for path in paths:
            self.push(path)


class BfsFrontier(Frontier):
    """FIFO: the first path popped that reaches a node is a shortest one."""

    def __init__(self) -> None:
        self._queue: Deque[Path] = deque()

    def push(self, path: Path) -> None:
        self._queue.append(path)

    def extend(self, paths: Iterable[Path]) -> None:
        self._queue.extend(paths)

    def pop(self) -> Path:
        return self._queue.popleft()

    def __len__(self) -> int:
        return len(self._queue)


class DfsFrontier(Frontier):
    """LIFO: the most recently pushed branch is explored first."""

    def __init__(self) -> None:
        self._stack: List[Path] = []

    def push(self, path: Path) -> None:
        self._stack.append(path)

    def extend(self, paths: Iterable[Path]) -> None:
        self._stack.extend(paths)

    def pop(self) -> Path:
        return self._stack.pop()

    def __len__(self) -> int:
        return len(self._stack)


class SearchStrategy(enum.Enum):
    BFS = "bfs"
    DFS = "dfs"

    @property
    def frontier_class(self) -> Type[Frontier]:
        return BfsFrontier if self is SearchStrategy.BFS else DfsFrontier


class VisitPolicy(enum.Enum):
    PATH = "path"
    GLOBAL = "global"


# ═══════════════════════════════════════════════════════════════════════
#  The search
# ═══════════════════════════════════════════════════════════════════════

class PathSearch:
    """
    Resumable enumeration of paths from ``Value(source)`` to ``Value(target)``.

    Each ``next_path()`` call pops paths from the frontier until one ends at
    the target (returned) or the frontier runs dry (``None``).  Every pop
    counts as one search step.  A found path is not extended further.
    """

    def __init__(
        self,
        mappings: GraphMappings,
        source: int,
        target: int,
        strategy: Union[SearchStrategy, Frontier] = SearchStrategy.BFS,
        visit: VisitPolicy = VisitPolicy.PATH,
    ) -> None:
        if not mappings.has_value(source):
            raise KeyError(f"source cell {source} is not referenced by any step")

        self._mappings = mappings
        self._goal = NodeId.value(target)
        self._visit = visit
        if isinstance(strategy, Frontier):
            self._frontier = strategy
        else:
            self._frontier = strategy.frontier_class()

        start = NodeId.value(source)
        self._frontier.push((start,))
        self._visited: Set[NodeId] = {start}
        self._search_steps = 0
        self._solutions = 0
        self._exhausted = False

    # ── Progress ──────────────────────────────────────────────────────

    @property
    def search_steps(self) -> int:
        """Number of paths popped from the frontier so far."""
        return self._search_steps

    @property
    def solutions(self) -> int:
        return self._solutions

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def frontier_size(self) -> int:
        return len(self._frontier)

    @property
    def visit_policy(self) -> VisitPolicy:
        return self._visit

    # ── Core ──────────────────────────────────────────────────────────

    def _admit(self, path: Path, node: NodeId) -> bool:
        if self._visit is VisitPolicy.PATH:
            return node not in path
        if node in self._visited:
            return False
        self._visited.add(node)
        return True

    def next_path(self, max_steps: Optional[int] = None) -> Optional[Path]:
        """
        Produce the next connecting path, or ``None`` once exhausted.

        With *max_steps*, also return ``None`` as soon as ``search_steps``
        reaches it; the search is then paused, not exhausted, and a later
        call resumes where it stopped.
        """
        while len(self._frontier):
            if max_steps is not None and self._search_steps >= max_steps:
                return None
            path = self._frontier.pop()
            self._search_steps += 1

            last = path[-1]
            if last == self._goal:
                self._solutions += 1
                return path

            self._frontier.extend(
                path + (node,)
                for node in neighbors(self._mappings, last)
                if self._admit(path, node)
            )

        if not self._exhausted:
            logger.debug(
                "Search exhausted after %d steps with %d solutions",
                self._search_steps, self._solutions,
            )
        self._exhausted = True
        return None

    def __iter__(self) -> Iterator[Path]:
        return self

    def __next__(self) -> Path:
        path = self.next_path()
        if path is None:
            raise StopIteration
        return path

    def __repr__(self) -> str:
        return (
            f"PathSearch(goal={self._goal!r}, steps={self._search_steps}, "
            f"solutions={self._solutions}, frontier={self.frontier_size})"
        )


def run_search(
    mappings: GraphMappings,
    source: int,
    target: int,
    strategy: SearchStrategy = SearchStrategy.BFS,
    visit: VisitPolicy = VisitPolicy.PATH,
) -> PathSearch:
    """Start a search; pull paths from the returned object as needed."""
    return PathSearch(mappings, source, target, strategy, visit)


def path_steps(path: Path) -> int:
    """Number of step nodes on *path*."""
    return sum(1 for node in path if node.is_step)
