"""
JSON provisioning report generator.
"""
import json
from datetime import datetime, timezone
from typing import List

from infragraph import __version__
from infragraph.models.stack import StackRun
from infragraph.reporters.markdown import describe_value, output_rows, stack_rows


def _stack_entry(run: StackRun) -> dict:
    doc = run.document
    return {
        "name": doc.name,
        "source_file": doc.source_file,
        "order": list(run.order),
        "resources": stack_rows(run),
        "grants": (
            [g.to_dict() for g in run.result.grants]
            if run.result and not run.error
            else [{"principal": g.principal, "role": g.role, "scope": g.scope} for g in doc.grants]
        ),
        "outputs": {o["name"]: o["value"] for o in output_rows(run)},
        "declared_outputs": {k: describe_value(v) for k, v in doc.outputs.items()},
        "result": run.result.to_dict() if run.result else None,
        "error": run.error,
    }


def build_report(runs: List[StackRun], source_path: str) -> str:
    report = {
        "meta": {
            "generated": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "source": source_path,
            "tool": "infragraph",
            "version": __version__,
        },
        "summary": {
            "stacks": len(runs),
            "resources": sum(len(r.document.resources) for r in runs),
            "materialized": sum(len(r.materialized) for r in runs),
            "grants": sum(len(r.document.grants) for r in runs),
            "failed": sum(1 for r in runs if r.error),
        },
        "stacks": [_stack_entry(r) for r in runs],
    }
    return json.dumps(report, indent=2, default=str)
