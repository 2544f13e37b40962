"""casm_dbg/config.py — tuning knobs for one analysis run."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import List, Optional

from .mappings import AddressEnd
from .search import SearchStrategy, VisitPolicy


@dataclass
class AnalysisConfig:
    """
    Options controlling candidate selection and path enumeration.

    ``max_solutions`` / ``max_search_steps`` of ``None`` mean "keep pulling
    until the frontier is exhausted".
    """
    strategy: SearchStrategy = SearchStrategy.DFS
    visit: VisitPolicy = VisitPolicy.PATH
    source_end: AddressEnd = AddressEnd.EARLIEST
    target_end: AddressEnd = AddressEnd.LATEST
    max_solutions: Optional[int] = None
    max_search_steps: Optional[int] = None

    def validate(self) -> List[str]:
        """Return a list of validation problems (empty if valid)."""
        problems: List[str] = []
        if self.max_solutions is not None and self.max_solutions <= 0:
            problems.append("max_solutions must be positive")
        if self.max_search_steps is not None and self.max_search_steps <= 0:
            problems.append("max_search_steps must be positive")
        return problems

    def should_stop(self, solutions: int, search_steps: int) -> bool:
        if self.max_solutions is not None and solutions >= self.max_solutions:
            return True
        if self.max_search_steps is not None and search_steps >= self.max_search_steps:
            return True
        return False

    @classmethod
    def from_namespace(cls, args: argparse.Namespace) -> "AnalysisConfig":
        return cls(
            strategy=SearchStrategy(args.strategy),
            visit=VisitPolicy(args.visit),
            source_end=AddressEnd(args.source_end),
            target_end=AddressEnd(args.target_end),
            max_solutions=args.max_solutions,
            max_search_steps=args.max_search_steps,
        )
