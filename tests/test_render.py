# tests/test_render.py
"""Text and DOT rendering of paths, plus the analysis configuration."""

import argparse

from casm_dbg.config import AnalysisConfig
from casm_dbg.mappings import AddressEnd
from casm_dbg.render import format_node, format_path, path_to_dot
from casm_dbg.search import NodeId, SearchStrategy, VisitPolicy
from casm_dbg.trace import RegisterFrame, Trace

from tests.conftest import make_memory

V = NodeId.value
S = NodeId.step


class TestFormatPath:

    def test_step_and_value_blocks(self, scenario):
        memory, trace = scenario
        assert format_path((V(10), S(0)), memory, trace) == [
            "  [10] = 100",
            "",
            "[ap + 0] = 100;",
            "    RegisterFrame(pc=0, ap=10, fp=10)",
        ]

    def test_negative_immediate_is_signed(self):
        memory, pcs = make_memory("jmp rel -2;")
        trace = Trace([RegisterFrame(pc=pcs[0], ap=5, fp=5)])
        assert format_node(S(0), memory, trace)[0] == "jmp rel -2;"

    def test_undecodable_and_unset(self):
        memory, _ = make_memory("", {3: 1})
        trace = Trace([RegisterFrame(pc=9, ap=5, fp=5)])
        assert format_node(S(0), memory, trace)[0].startswith("<undecodable instruction at pc=9")
        assert format_node(V(4), memory, trace) == ["  [4] = <unset>", ""]


class TestDot:

    def test_shared_nodes_drawn_once(self):
        memory, pcs = make_memory("ret; ret; ret;", {1: 1, 2: 2, 3: 3}, base=50)
        trace = Trace([RegisterFrame(pc=pc, ap=0, fp=0) for pc in pcs])
        paths = [(V(1), S(1), V(3)), (V(1), S(0), V(2), S(2), V(3))]
        dot = path_to_dot(paths, memory, trace, title="t")
        assert dot.count("v1 [") == 1
        assert dot.count("v3 [") == 1
        assert dot.count("->") == 6
        assert dot.count('fillcolor="yellow"') == 2
        assert dot.endswith("}")


class TestAnalysisConfig:

    def test_defaults(self):
        config = AnalysisConfig()
        assert config.strategy is SearchStrategy.DFS
        assert config.visit is VisitPolicy.PATH
        assert config.source_end is AddressEnd.EARLIEST
        assert config.target_end is AddressEnd.LATEST
        assert config.validate() == []

    def test_validate(self):
        problems = AnalysisConfig(max_solutions=0, max_search_steps=-1).validate()
        assert len(problems) == 2

    def test_should_stop(self):
        config = AnalysisConfig(max_solutions=2, max_search_steps=10)
        assert not config.should_stop(1, 5)
        assert config.should_stop(2, 5)
        assert config.should_stop(0, 10)
        assert not AnalysisConfig().should_stop(10**6, 10**6)

    def test_from_namespace(self):
        args = argparse.Namespace(
            strategy="bfs", visit="global", source_end="latest",
            target_end="earliest", max_solutions=3, max_search_steps=None,
        )
        config = AnalysisConfig.from_namespace(args)
        assert config.strategy is SearchStrategy.BFS
        assert config.visit is VisitPolicy.GLOBAL
        assert config.source_end is AddressEnd.LATEST
        assert config.target_end is AddressEnd.EARLIEST
        assert config.max_solutions == 3
