# table_diff_jobs.py
# Purpose: Declarative comparison jobs loaded from JSON config files.

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from table_diff_core import DiffKind, Transform, TransformKind, compare_tables, load_rows
from table_diff_excel import ReportConfig, entries_to_frame, write_excel

logger = logging.getLogger(__name__)

REPORT_SETTINGS = {
    "resultMode": "result_mode",
    "resultGroup": "result_group",
    "includeUnmodified": "include_unmodified",
    "sideSpacing": "side_spacing",
    "includeCaptions": "include_captions",
    "captionsSpacing": "captions_spacing",
    "includeOperation": "include_operation",
    "operationSpacing": "operation_spacing",
    "rowSpacing": "row_spacing",
}


class ConfigError(ValueError):
    """Raised for unreadable or inconsistent job configuration."""


def _pick(conf: Dict[str, Any], camel: str, snake: str, default=None):
    if camel in conf:
        return conf[camel]
    return conf.get(snake, default)


def parse_transform(rule: Dict[str, Any]) -> Transform:
    if not isinstance(rule, dict):
        raise ConfigError(f"Transform rule must be an object, got {rule!r}")
    column = rule.get("column")
    if not column:
        raise ConfigError(f"Transform rule without 'column': {rule!r}")
    try:
        kind = TransformKind(str(rule.get("type", "")).upper())
    except ValueError:
        raise ConfigError(f"Unknown transform type {rule.get('type')!r} for column '{column}'") from None
    if kind is TransformKind.DATE:
        if not rule.get("from") or not rule.get("to"):
            raise ConfigError(f"DATE transform for '{column}' needs 'from' and 'to'")
        return Transform.date(column, rule["from"], rule["to"])
    return Transform.check_null(column)


def _string_list(value, what: str) -> Optional[List[str]]:
    if value is None:
        return None
    if not isinstance(value, list):
        raise ConfigError(f"'{what}' must be a list, got {type(value).__name__}")
    return [str(v) for v in value]


class CompareJob:
    def __init__(
        self,
        name: str,
        before_file: str,
        after_file: str,
        output_file: str,
        keys: Optional[List[str]] = None,
        remap_before: Optional[List[Transform]] = None,
        remap_after: Optional[List[Transform]] = None,
        compare_columns: Optional[List[str]] = None,
        ignore_fields: Optional[List[str]] = None,
        before_environment: str = "BEFORE",
        after_environment: str = "AFTER",
        settings: Optional[Dict[str, Any]] = None,
    ):
        self.name = name
        self.before_file = before_file
        self.after_file = after_file
        self.output_file = output_file
        self.keys = keys or []
        self.remap_before = remap_before or []
        self.remap_after = remap_after or []
        self.compare_columns = compare_columns
        self.ignore_fields = ignore_fields or []
        self.before_environment = before_environment
        self.after_environment = after_environment
        self.settings = settings or {}

    @classmethod
    def from_dict(cls, conf: Dict[str, Any]) -> "CompareJob":
        """Build a job from a config entry (camelCase keys, snake_case accepted)."""
        missing = [c for c, s in (("beforeFile", "before_file"), ("afterFile", "after_file"),
                                  ("outputFile", "output_file")) if not _pick(conf, c, s)]
        if missing:
            raise ConfigError(f"Job {conf.get('name', '?')!r} is missing {', '.join(missing)}")

        settings = {}
        for k, v in (conf.get("settings") or {}).items():
            settings[REPORT_SETTINGS.get(k, k)] = v

        return cls(
            name=conf.get("name") or Path(_pick(conf, "outputFile", "output_file")).name,
            before_file=_pick(conf, "beforeFile", "before_file"),
            after_file=_pick(conf, "afterFile", "after_file"),
            output_file=_pick(conf, "outputFile", "output_file"),
            keys=_string_list(conf.get("keys"), "keys"),
            remap_before=[parse_transform(r) for r in _pick(conf, "remapBefore", "remap_before", None) or []],
            remap_after=[parse_transform(r) for r in _pick(conf, "remapAfter", "remap_after", None) or []],
            compare_columns=_string_list(_pick(conf, "compareColumns", "compare_columns"), "compareColumns"),
            ignore_fields=_string_list(_pick(conf, "ignoreFields", "ignore_fields"), "ignoreFields"),
            before_environment=_pick(conf, "beforeEnvironment", "before_environment", "BEFORE"),
            after_environment=_pick(conf, "afterEnvironment", "after_environment", "AFTER"),
            settings=settings,
        )

    def report_config(self) -> ReportConfig:
        try:
            return ReportConfig(
                before_label=self.before_environment,
                after_label=self.after_environment,
                **self.settings,
            )
        except TypeError as e:
            raise ConfigError(f"Job {self.name!r}: invalid report settings ({e})") from None


def config_filename(base_path, config_path) -> Path:
    return (Path(base_path) / Path(config_path)).with_suffix(".json").resolve()


def read_config(base_path, config_path, _seen: Optional[Set[Path]] = None) -> List[Dict[str, Any]]:
    """Flatten a JSON job list, following nested ``configPath`` includes.

    Entries with ``"disabled": true`` are dropped. Includes resolve relative
    to the including file's directory.
    """
    filename = config_filename(base_path, config_path)
    seen = set(_seen or ())
    if filename in seen:
        raise ConfigError(f"Config include cycle at {filename}")
    seen.add(filename)

    try:
        data = json.loads(filename.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {filename}") from None
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {filename}: {e}") from None
    if not isinstance(data, list):
        raise ConfigError(f"{filename} must contain a list of jobs")

    settings = []
    for conf in data:
        if not isinstance(conf, dict):
            raise ConfigError(f"{filename}: job entries must be objects, got {conf!r}")
        if conf.get("disabled"):
            continue
        inner = _pick(conf, "configPath", "config_path")
        if inner:
            settings.extend(read_config(filename.parent, inner, seen))
        else:
            settings.append(conf)
    logger.debug("Read %d job(s) from %s", len(settings), filename)
    return settings


def load_jobs(base_path, config_path) -> List[CompareJob]:
    return [CompareJob.from_dict(c) for c in read_config(base_path, config_path)]


def output_path(output_file) -> Path:
    p = Path(output_file)
    return p if p.suffix.lower() == ".xlsx" else p.with_name(p.name + ".xlsx")


def compare_and_render(
    before_source: Any,
    after_source: Any,
    cfg: ReportConfig,
    keys: Optional[List[str]] = None,
    remap_before: Optional[List[Transform]] = None,
    remap_after: Optional[List[Transform]] = None,
    compare_columns: Optional[List[str]] = None,
    ignore_fields: Optional[List[str]] = None,
    preview_limit: int = 500,
) -> Dict[str, Any]:
    before_header, before_rows = load_rows(before_source)
    after_header, after_rows = load_rows(after_source)

    result = compare_tables(
        before_header, before_rows,
        after_header, after_rows,
        keys=keys,
        remap_before=remap_before or [],
        remap_after=remap_after or [],
        compare_columns=compare_columns,
        ignore_fields=ignore_fields or [],
    )
    counts = result.counts()

    return {
        "summary": {
            "keys_used": result.keys_used,
            "columns": [h.name for h in result.header],
            "unmodified": counts[DiffKind.UNMODIFIED],
            "added": counts[DiffKind.ADDED],
            "removed": counts[DiffKind.REMOVED],
            "modified": counts[DiffKind.MODIFIED],
        },
        "result": result,
        "preview_df": entries_to_frame(result.entries, limit=preview_limit),
        "excel_bytes": write_excel(result, cfg),
    }


def run_job(job: CompareJob) -> Path:
    logger.info("Running '%s'...", job.name)
    rendered = compare_and_render(
        job.before_file, job.after_file, job.report_config(),
        keys=job.keys,
        remap_before=job.remap_before,
        remap_after=job.remap_after,
        compare_columns=job.compare_columns,
        ignore_fields=job.ignore_fields,
    )
    target = output_path(job.output_file)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(rendered["excel_bytes"])
    logger.info("Finished '%s' -> %s", job.name, target)
    return target
