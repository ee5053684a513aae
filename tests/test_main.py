"""Tests for the command-line entrypoint."""

from __future__ import annotations

import io
import json

import pytest

from adaptive_bls.main import main, replay


def _write(tmp_path, lines: list[str]):
    path = tmp_path / "stream.jsonl"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class TestReplay:
    def test_emits_changed_configs_and_metrics(self, tmp_path):
        path = _write(
            tmp_path,
            [
                "# recorded session",
                '{"arousal": 0.9, "valence": 0.1}',
                "",
                '{"arousal": 0.9, "valence": 0.1}',
                "not json",
                '{"arousal": 0.9}',
                '{"arousal": 0.9, "valence": 0.1}',
            ],
        )
        out = io.StringIO()
        emitted = replay(path, out=out)

        records = [json.loads(line) for line in out.getvalue().splitlines()]
        assert emitted == 3
        assert [r["cycle"] for r in records[:-1]] == [1, 2, 3]
        assert [r["config"]["speed"] for r in records[:-1]] == pytest.approx([4.0, 3.5, 3.25])
        assert records[-1]["metrics"]["average_speed"] == pytest.approx(3.5833333, rel=1e-4)

    def test_unchanged_configs_are_not_printed(self, tmp_path):
        path = _write(tmp_path, ['{"arousal": 0.5, "valence": 0.35}'] * 2)
        out = io.StringIO()
        assert replay(path, out=out) == 1
        assert len(out.getvalue().splitlines()) == 2

    def test_signed_input(self, tmp_path):
        path = _write(tmp_path, ['{"arousal": 0.8, "valence": -0.8}'])
        out = io.StringIO()
        replay(path, signed=True, out=out)
        first = json.loads(out.getvalue().splitlines()[0])
        # (0.9, 0.1) after normalisation: calming green, slowed down.
        assert first["config"]["color"] == "#10b981"
        assert first["config"]["speed"] == pytest.approx(4.0)


class TestMain:
    @pytest.fixture(autouse=True)
    def _keep_test_logging(self, monkeypatch):
        monkeypatch.setattr("adaptive_bls.main.setup_logging", lambda level: None)

    def test_no_command_prints_help(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1

    def test_replay_missing_file(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["replay", str(tmp_path / "missing.jsonl")])
        assert exc_info.value.code == 2

    def test_replay_command(self, tmp_path, capsys):
        path = _write(tmp_path, ['{"arousal": 0.2, "valence": 0.8}'])
        main(["replay", str(path)])
        lines = [ln for ln in capsys.readouterr().out.splitlines() if ln.startswith('{"')]
        assert len(lines) == 2
        assert json.loads(lines[0])["config"]["color"] == "#8b5cf6"
