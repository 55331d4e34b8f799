# cli_compare.py
import argparse
import logging
import sys
from pathlib import Path

from table_diff_core import Transform
from table_diff_excel import ReportConfig
from table_diff_jobs import compare_and_render, load_jobs, output_path, run_job


def _split(value: str):
    return [k.strip() for k in (value or "").split(",") if k.strip()]


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Compare two table snapshots and export a styled Excel diff")
    ap.add_argument("--config", help="JSON job list to run (relative to the current directory)")
    ap.add_argument("--file1", help="'before' CSV/XLSX")
    ap.add_argument("--file2", help="'after' CSV/XLSX")
    ap.add_argument("--out", default="table_difference.xlsx")
    ap.add_argument("--keys", help="Comma-separated key columns", default="")
    ap.add_argument("--columns", help="Comma-separated columns to compare (default: all)", default="")
    ap.add_argument("--ignore", help="Comma-separated columns excluded from change detection", default="")
    ap.add_argument("--date", nargs=3, action="append", metavar=("COLUMN", "FROM", "TO"), default=[],
                    help="Reformat a date column on both sides, e.g. --date created YYYY-MM-DD DD/MM/YYYY")
    ap.add_argument("--check-null", action="append", metavar="COLUMN", default=[],
                    help="Treat '?' as 'null' in this column on both sides")
    ap.add_argument("--mode", choices=["inline", "side"], default="inline")
    ap.add_argument("--group", action="store_true", help="Group rows by operation")
    ap.add_argument("--include-unmodified", action="store_true")
    ap.add_argument("--before-label", default="BEFORE")
    ap.add_argument("--after-label", default="AFTER")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap


def run_config(config_path: str) -> None:
    for job in load_jobs(Path.cwd(), config_path):
        print(f"▶ Running '{job.name}'...")
        target = run_job(job)
        print(f"✅ Wrote: {target}")


def run_files(args) -> None:
    transforms = [Transform.date(c, f, t) for c, f, t in args.date]
    transforms += [Transform.check_null(c) for c in args.check_null]
    cfg = ReportConfig(
        result_mode=args.mode,
        result_group=args.group,
        include_unmodified=args.include_unmodified,
        before_label=args.before_label,
        after_label=args.after_label,
    )

    result = compare_and_render(
        args.file1, args.file2, cfg,
        keys=_split(args.keys),
        remap_before=transforms,
        remap_after=transforms,
        compare_columns=_split(args.columns) or None,
        ignore_fields=_split(args.ignore),
    )
    target = output_path(args.out)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(result["excel_bytes"])

    summary = result["summary"]
    print(f"✅ Wrote: {target}")
    if summary["keys_used"]:
        print("🔑 Keys:", ", ".join(summary["keys_used"]))
    else:
        print("🔑 Paired by row order")
    print(f"➕ {summary['added']}  ➖ {summary['removed']}  ✏️ {summary['modified']}  "
          f"= {summary['unmodified']}")


def main(argv=None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    if not args.config and not (args.file1 and args.file2):
        ap.error("either --config or both --file1 and --file2 are required")

    try:
        if args.config:
            run_config(args.config)
        else:
            run_files(args)
    except ValueError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
