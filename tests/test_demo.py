# tests/test_demo.py
"""
The offline demo under examples/ runs end to end.
"""

import importlib.util
from pathlib import Path

import pytest

DEMO_PATH = Path(__file__).resolve().parents[1] / "examples" / "discover_demo.py"


@pytest.fixture
def demo():
    module_spec = importlib.util.spec_from_file_location("discover_demo", DEMO_PATH)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


class TestDiscoverDemo:
    async def test_runs_offline(self, demo, capsys):
        await demo.main()

        out = capsys.readouterr().out
        assert "Discovering keywords for 'standing desk'" in out
        assert "keywords in total" in out
        assert "'standing desk' (informational" in out
        assert "match with a recorded journey" in out

    async def test_scripted_suggestions_are_ranked(self, demo):
        suggestions = await demo.ScriptedSuggestions(per_query=3).get_suggestions("desk")
        assert [s.position for s in suggestions] == [0, 1, 2]
        assert all(s.query.startswith("desk ") for s in suggestions)
