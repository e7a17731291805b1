"""Tests for the command line entry point."""

import json

from click.testing import CliRunner

from sheetcanvas.cli import cli


class TestCli:
    def test_list_sheets(self, sample_xlsx):
        result = CliRunner().invoke(cli, [str(sample_xlsx), "--list-sheets"])
        assert result.exit_code == 0
        assert result.output.splitlines() == ["Summary", "Other"]

    def test_first_sheet_by_default(self, sample_xlsx, tmp_path):
        out = tmp_path / "out" / "elements.json"
        result = CliRunner().invoke(cli, [str(sample_xlsx), str(out), "--monospace"])
        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        assert [s["sheet"] for s in data["sheets"]] == ["Summary"]
        assert data["sheets"][0]["stage"] == "done"
        assert "Converted sample.xlsx" in result.output

    def test_all_sheets_with_report_and_assets(self, sample_xlsx, tmp_path):
        out = tmp_path / "elements.json"
        report = tmp_path / "report.json"
        assets = tmp_path / "assets"
        result = CliRunner().invoke(
            cli,
            [str(sample_xlsx), str(out), "--all-sheets", "--monospace",
             "--report", str(report), "--assets-dir", str(assets), "-v"],
        )
        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        assert [s["sheet"] for s in data["sheets"]] == ["Summary", "Other"]
        report_data = json.loads(report.read_text(encoding="utf-8"))
        assert report_data["sheets"] == ["Summary", "Other"]
        assert (assets / "media" / "logo.png").exists()
        assert "Reconstructing: Summary" in result.output

    def test_named_sheet(self, sample_xlsx, tmp_path):
        out = tmp_path / "other.json"
        result = CliRunner().invoke(cli, [str(sample_xlsx), str(out), "--sheet", "Other", "--monospace"])
        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["sheets"][0]["elements"][0]["text"] == "x"

    def test_unknown_sheet(self, sample_xlsx, tmp_path):
        result = CliRunner().invoke(cli, [str(sample_xlsx), str(tmp_path / "o.json"), "--sheet", "Nope"])
        assert result.exit_code == 1
        assert not (tmp_path / "o.json").exists()

    def test_output_required(self, sample_xlsx):
        result = CliRunner().invoke(cli, [str(sample_xlsx)])
        assert result.exit_code == 1

    def test_conflicting_sheet_options(self, sample_xlsx, tmp_path):
        result = CliRunner().invoke(
            cli, [str(sample_xlsx), str(tmp_path / "o.json"), "--sheet", "Other", "--all-sheets"]
        )
        assert result.exit_code == 1

    def test_not_a_workbook(self, tmp_path):
        bogus = tmp_path / "bogus.xlsx"
        bogus.write_bytes(b"not a zip file")
        result = CliRunner().invoke(cli, [str(bogus), str(tmp_path / "o.json")])
        assert result.exit_code == 1

    def test_config_file(self, sample_xlsx, tmp_path):
        config = tmp_path / "settings.yaml"
        config.write_text("include_hidden: true\n", encoding="utf-8")
        out = tmp_path / "o.json"
        result = CliRunner().invoke(cli, [str(sample_xlsx), str(out), "--config", str(config), "--monospace"])
        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        reasons = [s["reason"] for s in data["sheets"][0]["skipped"]]
        assert reasons.count("hidden") == 1

    def test_bad_config(self, sample_xlsx, tmp_path):
        config = tmp_path / "settings.yaml"
        config.write_text("- nope\n", encoding="utf-8")
        result = CliRunner().invoke(cli, [str(sample_xlsx), str(tmp_path / "o.json"), "--config", str(config)])
        assert result.exit_code == 1
