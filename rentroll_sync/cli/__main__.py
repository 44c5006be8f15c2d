# rentroll_sync/cli/__main__.py
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from ..db import SessionLocal, init_db
from ..logging_config import configure_logging
from ..services.run_reports import html_for_run, markdown_for_run
from ..services.solver_engine import run_batch
from ..services.storage import SqlAlchemyStorage
from ..workers.notifications import notify_run_completed
from .staging import stage_file


def _cmd_run(args: argparse.Namespace) -> int:
    db = SessionLocal()
    try:
        storage = SqlAlchemyStorage(db)
        outcome, tracker = run_batch(storage, args.batch_id, notifier=notify_run_completed)
        print(
            {
                "ok": outcome.status == "completed",
                "run_id": outcome.run_id,
                "status": outcome.status,
                "status_message": outcome.status_message,
                "events": len(tracker.events),
                "skipped": len(outcome.skipped),
            }
        )
        if args.markdown_out and outcome.run_id is not None:
            out = markdown_for_run(storage, outcome.run_id)
            if out is not None:
                target = Path(args.markdown_out)
                if target.is_dir():
                    target = target / out[0]
                target.write_text(out[1], encoding="utf-8")
                print(f"report written to {target}")
        return 0 if outcome.status == "completed" else 1
    finally:
        db.close()


def _cmd_report(args: argparse.Namespace) -> int:
    db = SessionLocal()
    try:
        storage = SqlAlchemyStorage(db)
        if args.format == "html":
            body = html_for_run(storage, args.run_id)
        else:
            out = markdown_for_run(storage, args.run_id)
            body = out[1] if out else None
        if body is None:
            print(f"run {args.run_id} not found", file=sys.stderr)
            return 1
        print(body)
        return 0
    finally:
        db.close()


def _cmd_stage(args: argparse.Namespace) -> int:
    db = SessionLocal()
    try:
        for r in stage_file(db, args.batch_id, Path(args.file)):
            print({"batch_id": r.batch_id, "report_type": r.report_type, "rows": r.rows})
        return 0
    finally:
        db.close()


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="rentroll_sync")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create tables (local/dev only)")

    st = sub.add_parser("stage", help="load a JSON batch into import_staging")
    st.add_argument("--batch-id", required=True)
    st.add_argument("--file", required=True)

    run = sub.add_parser("run", help="reconcile one staged batch")
    run.add_argument("--batch-id", required=True)
    run.add_argument("--markdown-out", default=None, help="file or directory for the markdown report")

    rep = sub.add_parser("report", help="render a persisted run")
    rep.add_argument("--run-id", type=int, required=True)
    rep.add_argument("--format", choices=["md", "html"], default="md")

    args = p.parse_args(argv)
    configure_logging()

    if args.command == "init-db":
        init_db()
        print({"ok": True})
        return 0
    if args.command == "stage":
        return _cmd_stage(args)
    if args.command == "run":
        return _cmd_run(args)
    return _cmd_report(args)


if __name__ == "__main__":
    sys.exit(main())
