"""Tests for the sleephrv command line."""

import json

import pytest
from click.testing import CliRunner

from sleephrv.cli import main

from tests.conftest import alternating_rr, white_noise_rr, write_text


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def night_file(tmp_path):
    return write_text(tmp_path / "night.txt", "\n".join(str(v) for v in white_noise_rr(1200)))


@pytest.fixture
def short_file(tmp_path):
    return write_text(tmp_path / "short.txt", "\n".join(["1000"] * 100))


class TestAnalyze:
    def test_summary(self, cli_runner, night_file):
        result = cli_runner.invoke(main, ["analyze", str(night_file)])
        assert result.exit_code == 0, result.output
        assert "1200 beats" in result.output
        assert "Passed verification" in result.output
        assert "none (no consolidated recovery)" in result.output
        assert "RMSSD" in result.output

    def test_json_output(self, cli_runner, night_file, tmp_path):
        out = tmp_path / "report.json"
        result = cli_runner.invoke(main, ["analyze", str(night_file), "-o", str(out)])
        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text())
        assert data["beat_count"] == 1200
        assert data["analysis_source"] == "peak_capacity"

    def test_method_and_position(self, cli_runner, night_file, tmp_path):
        out = tmp_path / "report.json"
        result = cli_runner.invoke(
            main,
            ["analyze", str(night_file), "--position-min", "10", "-o", str(out)],
        )
        assert result.exit_code == 0, result.output
        assert json.loads(out.read_text())["selection_method"] == "custom"

    def test_config_file(self, cli_runner, night_file, tmp_path):
        cfg = write_text(
            tmp_path / "engine.toml",
            "[classifier]\nalpha1_organized_low = 0.0\nalpha1_organized_high = 5.0\n",
        )
        out = tmp_path / "report.json"
        result = cli_runner.invoke(
            main, ["analyze", str(night_file), "--config", str(cfg), "-o", str(out)]
        )
        assert result.exit_code == 0, result.output
        assert json.loads(out.read_text())["analysis_source"] == "recovery_window"

    def test_bad_config(self, cli_runner, night_file, tmp_path):
        cfg = write_text(tmp_path / "bad.toml", "[bogus]\nx = 1\n")
        result = cli_runner.invoke(main, ["analyze", str(night_file), "--config", str(cfg)])
        assert result.exit_code != 0
        assert "unknown config section" in result.output

    def test_unreadable_file(self, cli_runner, tmp_path):
        path = write_text(tmp_path / "junk.txt", "no numbers here\n")
        result = cli_runner.invoke(main, ["analyze", str(path)])
        assert result.exit_code != 0
        assert "no RR values found" in result.output

    def test_rejected_recording(self, cli_runner, short_file):
        result = cli_runner.invoke(main, ["analyze", str(short_file)])
        assert result.exit_code == 0
        assert "Rejected" in result.output
        assert "Window:" not in result.output


class TestVerify:
    def test_pass(self, cli_runner, night_file):
        result = cli_runner.invoke(main, ["verify", str(night_file)])
        assert result.exit_code == 0
        assert "Passed verification" in result.output

    def test_reject_exits_1(self, cli_runner, short_file):
        result = cli_runner.invoke(main, ["verify", str(short_file)])
        assert result.exit_code == 1
        assert "Insufficient Data Points" in result.output

    def test_streaming(self, cli_runner, tmp_path):
        path = write_text(tmp_path / "live.txt", "\n".join(str(v) for v in white_noise_rr(200)))
        assert cli_runner.invoke(main, ["verify", str(path)]).exit_code == 1
        assert cli_runner.invoke(main, ["verify", str(path), "--streaming"]).exit_code == 0


class TestArtifacts:
    def test_counts(self, cli_runner, tmp_path):
        rr = alternating_rr(400)
        rr[100] = 2600
        path = write_text(tmp_path / "rr.txt", "\n".join(str(v) for v in rr))
        result = cli_runner.invoke(main, ["artifacts", str(path)])
        assert result.exit_code == 0
        assert "400 beats" in result.output
        assert "technical  1" in result.output

    def test_config_thresholds(self, cli_runner, tmp_path):
        rr = alternating_rr(400)
        rr[100] = 1800
        path = write_text(tmp_path / "rr.txt", "\n".join(str(v) for v in rr))
        cfg = write_text(tmp_path / "engine.toml", "[artifacts]\nmax_rr_ms = 1500\n")
        default = cli_runner.invoke(main, ["artifacts", str(path)])
        assert "technical  0" in default.output
        result = cli_runner.invoke(main, ["artifacts", str(path), "--config", str(cfg)])
        assert result.exit_code == 0, result.output
        assert "technical  1" in result.output

    def test_bad_config(self, cli_runner, tmp_path):
        path = write_text(tmp_path / "rr.txt", "\n".join(["1000"] * 50))
        cfg = write_text(tmp_path / "bad.toml", "[artifacts]\nmax_rr_ms = 100\n")
        result = cli_runner.invoke(main, ["artifacts", str(path), "--config", str(cfg)])
        assert result.exit_code != 0
        assert "min_rr_ms must be below max_rr_ms" in result.output
