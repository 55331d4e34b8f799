"""Tests for job configuration loading and running."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from openpyxl import load_workbook, Workbook

from table_diff_core import InvalidInput, TransformKind, load_rows
from table_diff_jobs import (
    CompareJob,
    ConfigError,
    compare_and_render,
    load_jobs,
    output_path,
    parse_transform,
    read_config,
    run_job,
)
from table_diff_excel import ReportConfig


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestParseTransform:
    """Tests for transform rule dictionaries."""

    def test_date_rule(self):
        rule = parse_transform({"column": "born", "type": "DATE", "from": "YYYY-MM-DD", "to": "DD/MM/YYYY"})
        assert rule.kind is TransformKind.DATE
        assert (rule.from_format, rule.to_format) == ("YYYY-MM-DD", "DD/MM/YYYY")

    def test_check_null_rule(self):
        assert parse_transform({"column": "x", "type": "check_null"}).kind is TransformKind.CHECK_NULL

    @pytest.mark.parametrize("rule", [
        {"column": "x", "type": "UPPER"},
        {"column": "x", "type": "DATE", "from": "YYYY"},
        {"type": "CHECK_NULL"},
        "CHECK_NULL",
    ])
    def test_invalid_rules(self, rule):
        with pytest.raises(ConfigError):
            parse_transform(rule)


class TestCompareJob:
    """Tests for building jobs from config entries."""

    def test_from_camel_case(self):
        job = CompareJob.from_dict({
            "name": "groups",
            "beforeFile": "in/a.csv",
            "afterFile": "in/b.csv",
            "outputFile": "out/groups",
            "keys": ["id"],
            "remapAfter": [{"column": "x", "type": "CHECK_NULL"}],
            "compareColumns": ["id", "x"],
            "ignoreFields": ["x"],
            "beforeEnvironment": "PFS",
            "afterEnvironment": "TC2",
            "settings": {"resultMode": "side", "includeUnmodified": True},
        })
        assert job.keys == ["id"]
        assert job.remap_before == []
        assert job.remap_after[0].column == "x"
        assert job.compare_columns == ["id", "x"]
        cfg = job.report_config()
        assert cfg.side
        assert cfg.include_unmodified
        assert (cfg.before_label, cfg.after_label) == ("PFS", "TC2")

    def test_snake_case_and_defaults(self):
        job = CompareJob.from_dict({"before_file": "a.csv", "after_file": "b.csv", "output_file": "out/r"})
        assert job.name == "r"
        assert job.keys == []
        assert job.compare_columns is None
        assert (job.before_environment, job.after_environment) == ("BEFORE", "AFTER")

    def test_missing_files(self):
        with pytest.raises(ConfigError, match="afterFile"):
            CompareJob.from_dict({"beforeFile": "a.csv", "outputFile": "o"})

    def test_unknown_setting(self):
        job = CompareJob.from_dict({"beforeFile": "a", "afterFile": "b", "outputFile": "o",
                                    "settings": {"colour": "red"}})
        with pytest.raises(ConfigError):
            job.report_config()


class TestReadConfig:
    """Tests for nested config files."""

    def test_nested_and_disabled(self, tmp_path):
        write_json(tmp_path / "config" / "inner" / "more.json", [{"name": "c"}, {"name": "d", "disabled": True}])
        write_json(tmp_path / "config" / "main.json", [
            {"name": "a"},
            {"name": "b", "disabled": True},
            {"configPath": "inner/more"},
        ])
        jobs = read_config(tmp_path, "config/main")
        assert [j["name"] for j in jobs] == ["a", "c"]

    def test_extension_is_forced(self, tmp_path):
        write_json(tmp_path / "jobs.json", [{"name": "a"}])
        assert read_config(tmp_path, "jobs.txt") == [{"name": "a"}]

    def test_cycle(self, tmp_path):
        write_json(tmp_path / "a.json", [{"configPath": "b"}])
        write_json(tmp_path / "b.json", [{"configPath": "a"}])
        with pytest.raises(ConfigError, match="cycle"):
            read_config(tmp_path, "a")

    def test_same_file_twice_is_not_a_cycle(self, tmp_path):
        write_json(tmp_path / "leaf.json", [{"name": "x"}])
        write_json(tmp_path / "root.json", [{"configPath": "leaf"}, {"configPath": "leaf"}])
        assert len(read_config(tmp_path, "root")) == 2

    def test_missing_and_malformed(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            read_config(tmp_path, "nope")
        (tmp_path / "bad.json").write_text("{", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            read_config(tmp_path, "bad")
        write_json(tmp_path / "obj.json", {"name": "a"})
        with pytest.raises(ConfigError, match="list"):
            read_config(tmp_path, "obj")


class TestLoadRows:
    """Tests for reading source files into header + rows."""

    def test_csv_keeps_strings(self, write_csv):
        path = write_csv("a.csv", [["id", "code", "note"], ["1", "007", ""], ["2", "NA", "x"]])
        header, rows = load_rows(path)
        assert header == ["id", "code", "note"]
        assert rows == [["1", "007", ""], ["2", "NA", "x"]]

    def test_ragged_csv_rows(self, write_csv):
        path = write_csv("ragged.csv", [["id", "v"], ["1", "a"], ["2", "b", "extra"], ["3"]])
        header, rows = load_rows(path)
        assert header == ["id", "v"]
        assert rows == [["1", "a"], ["2", "b"], ["3", ""]]

    def test_xlsx(self, tmp_path):
        wb = Workbook()
        ws = wb.active
        ws.append(["id", "name"])
        ws.append([7, "Ana"])
        ws.append([8, None])
        path = tmp_path / "a.xlsx"
        wb.save(path)
        header, rows = load_rows(path)
        assert header == ["id", "name"]
        assert rows == [["7", "Ana"], ["8", ""]]

    def test_file_like(self, write_csv):
        path = write_csv("a.csv", [["id"], ["1"]])
        with open(path, "rb") as f:
            f.read()
            header, rows = load_rows(f)
        assert header == ["id"]
        assert rows == [["1"]]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.xlsx"
        Workbook().save(path)
        with pytest.raises(InvalidInput):
            load_rows(path)


class TestRunJob:
    """End-to-end job runs."""

    def test_compare_and_render(self, write_csv, people_header, people_before, people_after):
        before = write_csv("before.csv", [people_header] + people_before)
        after = write_csv("after.csv", [people_header] + people_after)
        result = compare_and_render(before, after, ReportConfig(), keys=["id"])
        assert result["summary"]["keys_used"] == ["id"]
        assert result["summary"]["added"] == 1
        assert result["summary"]["modified"] == 1
        assert len(result["preview_df"]) == 4
        assert result["excel_bytes"][:2] == b"PK"

    def test_run_job_writes_workbook(self, tmp_path, write_csv, people_header, people_before, people_after):
        before = write_csv("before.csv", [people_header] + people_before)
        after = write_csv("after.csv", [people_header] + people_after)
        write_json(tmp_path / "jobs.json", [{
            "name": "people",
            "beforeFile": str(before),
            "afterFile": str(after),
            "keys": ["id"],
            "outputFile": str(tmp_path / "out" / "people"),
            "afterEnvironment": "TC2",
        }])
        (job,) = load_jobs(tmp_path, "jobs")
        target = run_job(job)
        assert target == tmp_path / "out" / "people.xlsx"
        ws = load_workbook(target)["Table difference"]
        assert ws.cell(row=2, column=5).value == "Removed from TC2"

    def test_output_path(self):
        assert output_path("out/report") == Path("out/report.xlsx")
        assert output_path("out/report.xlsx") == Path("out/report.xlsx")
        assert output_path("out/v1.2") == Path("out/v1.2.xlsx")
