"""
Markdown + Mermaid provisioning plan / apply report generator.
"""
import re
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List

from jinja2 import Environment

from infragraph import __version__
from infragraph.graph.builder import dependencies
from infragraph.models.resource import Interpolation, Reference, ResourceSpec, SanitizedName
from infragraph.models.stack import StackRun

_STATUS_ICON = {
    "created": "✅",
    "failed": "❌",
    "planned": "⏳",
}

_STATUS_ASCII = {
    "created": "[OK]",
    "failed": "[FAILED]",
    "planned": "[PLANNED]",
}

_CATEGORY_MAP = {
    # kind prefix → subgraph label; first match wins
    "storage-queue": "Messaging",
    "servicebus": "Messaging",
    "eventhub": "Messaging",
    "consumer-group": "Messaging",
    "eventgrid": "Messaging",
    "storage": "Data",
    "blob": "Data",
    "cosmosdb": "Data",
    "key-vault": "Security",
    "app-configuration": "Security",
    "service-sas": "Security",
    "app-service-plan": "Compute",
    "web-app": "Compute",
    "container": "Compute",
    "managed-environment": "Compute",
    "apim": "Compute",
    "entra": "Identity",
    "role-assignment": "Identity",
}


def _sanitize_node_id(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_]", "_", name)


def _category(spec: ResourceSpec) -> str:
    for prefix, label in _CATEGORY_MAP.items():
        if spec.kind.startswith(prefix):
            return label
    return "Other"


def _node_shape(spec: ResourceSpec) -> str:
    label = spec.name
    sg = _category(spec)
    if sg == "Data":
        return f"[({label})]"
    if sg == "Messaging":
        return f">{label}]"
    if sg == "Security":
        return f"{{{{{label}}}}}"
    if sg == "Identity":
        return f"[/{label}/]"
    return f"[{label}]"


def describe_value(value: Any) -> str:
    """Human-readable form of an unresolved config value."""
    if isinstance(value, Reference):
        return str(value)
    if isinstance(value, Interpolation):
        return value.template
    if isinstance(value, SanitizedName):
        return f"sanitize({describe_value(value.source)}, {value.max_length})"
    return str(value)


def status(run: StackRun, name: str) -> str:
    if name in run.materialized:
        return "created"
    if run.failed_resource == name:
        return "failed"
    return "planned"


def _edge_labels(spec: ResourceSpec) -> Dict[str, str]:
    """Dependency name → attributes read from it."""
    attrs: Dict[str, List[str]] = defaultdict(list)
    for ref in spec.references():
        if ref.attribute not in attrs[ref.target]:
            attrs[ref.target].append(ref.attribute)
    return {target: ", ".join(a) for target, a in attrs.items()}


def build_mermaid(run: StackRun) -> str:
    doc = run.document
    subgraphs: Dict[str, List[ResourceSpec]] = defaultdict(list)
    for spec in doc.resources:
        subgraphs[_category(spec)].append(spec)

    lines = ["flowchart LR"]

    sg_order = ["Compute", "Messaging", "Data", "Security", "Identity", "Other"]
    for sg_name in sg_order:
        sg_specs = subgraphs.get(sg_name, [])
        if not sg_specs:
            continue
        lines.append(f"    subgraph {sg_name}")
        for spec in sg_specs:
            lines.append(f"        {_sanitize_node_id(spec.name)}{_node_shape(spec)}")
        lines.append("    end")

    # dependent → dependency; dotted for ownership
    for spec in doc.resources:
        src_id = _sanitize_node_id(spec.name)
        labels = _edge_labels(spec)
        if spec.parent:
            lines.append(f"    {src_id} -.->|parent| {_sanitize_node_id(spec.parent)}")
        for target, label in labels.items():
            lines.append(f"    {src_id} -->|{label}| {_sanitize_node_id(target)}")

    principals = []
    for g in doc.grants:
        if g.principal not in principals:
            principals.append(g.principal)
            lines.append(f"    {_sanitize_node_id('principal_' + g.principal)}(({g.principal}))")
        lines.append(
            f"    {_sanitize_node_id('principal_' + g.principal)} ==>|{g.role}| {_sanitize_node_id(g.scope)}"
        )

    status_style = {
        "created": "fill:#88cc00,color:#000",
        "failed": "fill:#ff4444,color:#fff",
    }
    for spec in doc.resources:
        style = status_style.get(status(run, spec.name))
        if style:
            lines.append(f"    style {_sanitize_node_id(spec.name)} {style}")

    return "\n".join(lines)


def stack_rows(run: StackRun) -> List[Dict[str, Any]]:
    """Resources in evaluation order (declaration order for anything unplanned)."""
    index = {spec.name: spec for spec in run.document.resources}
    names = list(run.order) + [s.name for s in run.document.resources if s.name not in run.order]
    rows = []
    for name in names:
        spec = index[name]
        resolved = run.materialized.get(name)
        rows.append({
            "name": name,
            "kind": spec.kind,
            "parent": spec.parent or "",
            "depends_on": ", ".join(d for d in dependencies(spec) if d != spec.parent),
            "status": status(run, name),
            "id": resolved.get("id", "") if resolved else "",
        })
    return rows


def output_rows(run: StackRun) -> List[Dict[str, str]]:
    resolved = run.result.outputs if run.result else {}
    return [
        {"name": k, "value": str(resolved[k]) if k in resolved else describe_value(v)}
        for k, v in run.document.outputs.items()
    ]


_TEMPLATE = """\
# Provisioning Report

**Generated:** {{ generated }}
**Source:** {{ source }}
**Tool:** infragraph v{{ version }}
**Mode:** {{ mode }}

---

## Summary

{{ stack_count }} stack(s), **{{ resource_count }} resources**, **{{ grant_count }} grants**.
{% for run in runs %}
- `{{ run.document.name }}`: {% if run.error %}{{ icon["failed"] }} {{ run.error }}{% elif run.result %}{{ icon["created"] }} {{ run.result.resources | length }} resources{% else %}{{ icon["planned"] }} {{ run.order | length }} resources planned{% endif %}{% endfor %}

{% for s in stacks %}{% set run = s.run %}
---

## Stack `{{ run.document.name }}`

**File:** `{{ run.document.source_file }}`

### Evaluation Order

| # | Resource | Kind | Parent | Depends on | Status |
|---|----------|------|--------|------------|--------|
{% for r in s.rows %}| {{ loop.index }} | `{{ r.name }}` | `{{ r.kind }}` | {{ r.parent }} | {{ r.depends_on }} | {{ icon[r.status] }} {{ r.status }} |
{% endfor %}
{% if run.document.grants %}
### Access Grants

| Principal | Role | Scope |
|-----------|------|-------|
{% for g in run.document.grants %}| {{ g.principal }} | {{ g.role }} | `{{ g.scope }}` |
{% endfor %}{% endif %}
{% if s.outputs %}
### Outputs

| Output | Value |
|--------|-------|
{% for o in s.outputs %}| `{{ o.name }}` | `{{ o.value }}` |
{% endfor %}{% endif %}
### Dependency Graph

```mermaid
{{ s.mermaid }}
```
{% endfor %}
"""


def build_report(runs: List[StackRun], source_path: str, ascii_mode: bool = False) -> str:
    env = Environment(autoescape=False)
    template = env.from_string(_TEMPLATE)

    return template.render(
        generated=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
        source=source_path,
        version=__version__,
        mode="apply" if any(r.result or r.error for r in runs) else "plan",
        stack_count=len(runs),
        resource_count=sum(len(r.document.resources) for r in runs),
        grant_count=sum(len(r.document.grants) for r in runs),
        runs=runs,
        stacks=[
            {"run": r, "rows": stack_rows(r), "outputs": output_rows(r), "mermaid": build_mermaid(r)}
            for r in runs
        ],
        icon=_STATUS_ASCII if ascii_mode else _STATUS_ICON,
    )
