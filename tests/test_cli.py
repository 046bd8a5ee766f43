"""Terminal client: resolve (demo mode), run, and argument handling."""

from __future__ import annotations

import json
import os
from unittest.mock import patch

import pytest

from automation_agent.cli import _parse_meta, main

_ENV = {"OPENAI_API_KEY": "", "ANTHROPIC_API_KEY": "", "REASONING_ENGINE": "openai"}

_FLOW = {
    "flow_id": "f1",
    "graph": {
        "id": "g1",
        "title": "Night mode",
        "blocks": [
            {"id": "t", "type": "ManualQuickTrigger"},
            {"id": "w", "type": "TimeWindowCondition", "params": {"start": "22:00", "end": "06:00"}},
            {"id": "a", "type": "ToggleWifiAction", "params": {"enable": "false"}},
        ],
        "edges": [{"from": "t", "to": "w"}, {"from": "w", "to": "a"}],
    },
}


class TestParseMeta:
    def test_pairs(self):
        assert _parse_meta(["local_time=22:30", "context=a=b"]) == {"local_time": "22:30", "context": "a=b"}

    def test_bare_key_exits(self):
        with pytest.raises(SystemExit) as exc:
            _parse_meta(["oops"])
        assert exc.value.code == 2


class TestResolveCommand:
    def test_prints_demo_flow(self, capsys):
        with patch.dict(os.environ, _ENV):
            main(["resolve", "Take a photo when my phone moves"])
        body = json.loads(capsys.readouterr().out)
        assert body["graph"]["title"] == "Intruder Alert"
        assert body["risk_flags"] == ["Demo mode"]

    def test_writes_out_file(self, tmp_path, capsys):
        out = tmp_path / "flow.json"
        with patch.dict(os.environ, _ENV):
            main(["resolve", "anything", "--capability", "camera", "--out", str(out)])
        assert json.loads(out.read_text())["graph"]["blocks"][0]["id"] == "trigger1"
        assert "written to" in capsys.readouterr().out

    def test_unknown_provider_exits(self, capsys):
        with patch.dict(os.environ, dict(_ENV, REASONING_ENGINE="llama")):
            with pytest.raises(SystemExit) as exc:
                main(["resolve", "anything"])
        assert exc.value.code == 1
        assert "Unknown reasoning engine provider" in capsys.readouterr().err


class TestRunCommand:
    def test_runs_flow_file(self, tmp_path, capsys):
        path = tmp_path / "flow.json"
        path.write_text(json.dumps(_FLOW))
        main(["run", str(path), "--meta", "local_time=23:15"])

        out = capsys.readouterr().out
        assert "Night mode" in out
        assert "Within 22:00-06:00 window" in out
        assert "Wi-Fi state set to false" in out
        assert "3 step(s)" in out

    def test_gate_conditions(self, tmp_path, capsys):
        path = tmp_path / "flow.json"
        path.write_text(json.dumps(_FLOW))
        main(["run", str(path), "--meta", "local_time=12:00", "--gate-conditions"])

        out = capsys.readouterr().out
        assert "Outside window 22:00-06:00" in out
        assert "Wi-Fi" not in out
        assert "2 step(s)" in out

    def test_invalid_flow_exits_with_rule(self, tmp_path, capsys):
        broken = json.loads(json.dumps(_FLOW))
        broken["graph"]["edges"].append({"from": "a", "to": "ghost"})
        path = tmp_path / "flow.json"
        path.write_text(json.dumps(broken))

        with pytest.raises(SystemExit) as exc:
            main(["run", str(path)])
        assert exc.value.code == 1
        assert "[dangling_edge]" in capsys.readouterr().err

    def test_missing_file_exits(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["run", str(tmp_path / "nope.json")])
        assert exc.value.code == 1


class TestNoCommand:
    def test_prints_help(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 1
        assert "automation-agent" in capsys.readouterr().out
