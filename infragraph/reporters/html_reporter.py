"""
Interactive HTML + Mermaid provisioning report generator.
"""
from datetime import datetime, timezone
from typing import List

from jinja2 import Environment

from infragraph import __version__
from infragraph.models.stack import StackRun
from infragraph.reporters import markdown

_HTML_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Provisioning Report - infragraph</title>
    <script src="https://cdn.jsdelivr.net/npm/mermaid/dist/mermaid.min.js"></script>
    <style>
        body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 1200px; margin: 0 auto; padding: 2rem; background: #f9f9f9; }
        header { border-bottom: 2px solid #ddd; margin-bottom: 2rem; padding-bottom: 1rem; }
        h1 { color: #0078d4; margin-bottom: 0; }
        .meta { color: #666; font-size: 0.9rem; margin-bottom: 2rem; }
        .summary-cards { display: grid; grid-template-columns: repeat(auto-fit, minmax(150px, 1fr)); gap: 1rem; margin-bottom: 2rem; }
        .card { background: white; padding: 1rem; border-radius: 8px; box-shadow: 0 2px 4px rgba(0,0,0,0.1); text-align: center; border-left: 5px solid #ddd; }
        .card.created { border-left-color: #4caf50; }
        .card.failed { border-left-color: #f44336; }
        .card-num { font-size: 2rem; font-weight: bold; margin-bottom: 0.2rem; }
        .card-label { color: #666; font-size: 0.8rem; text-transform: uppercase; }
        .mermaid-container { background: white; padding: 2rem; border-radius: 8px; box-shadow: 0 2px 4px rgba(0,0,0,0.1); margin-bottom: 2rem; overflow-x: auto; }
        .res-table { width: 100%; border-collapse: collapse; background: white; border-radius: 8px; overflow: hidden; box-shadow: 0 2px 4px rgba(0,0,0,0.1); margin-bottom: 2rem; }
        .res-table th, .res-table td { padding: 0.75rem 1rem; text-align: left; border-bottom: 1px solid #eee; }
        .res-table th { background: #f5f5f5; font-weight: 600; }
        .status { font-weight: bold; padding: 0.2rem 0.5rem; border-radius: 4px; font-size: 0.8rem; }
        .st-created { background: #e8f5e9; color: #2e7d32; }
        .st-failed { background: #ffebee; color: #c62828; }
        .st-planned { background: #f5f5f5; color: #666; }
        .error { background: #ffebee; color: #c62828; padding: 1rem; border-radius: 4px; border-left: 3px solid #c62828; margin-bottom: 1rem; }
        code { font-size: 0.85rem; }
        footer { margin-top: 4rem; text-align: center; color: #999; font-size: 0.8rem; }
    </style>
</head>
<body>
    <header>
        <h1>Provisioning Report</h1>
        <div class="meta">Generated: {{ generated }} | Source: {{ source }} | infragraph v{{ version }}</div>
    </header>

    <div class="summary-cards">
        <div class="card"><div class="card-num">{{ stacks | length }}</div><div class="card-label">Stacks</div></div>
        <div class="card"><div class="card-num">{{ resource_count }}</div><div class="card-label">Resources</div></div>
        <div class="card created"><div class="card-num">{{ materialized_count }}</div><div class="card-label">Materialized</div></div>
        <div class="card failed"><div class="card-num">{{ failed_count }}</div><div class="card-label">Failed stacks</div></div>
    </div>

    {% for s in stacks %}
    <h2>{{ s.run.document.name }}</h2>
    {% if s.run.error %}<div class="error">{{ s.run.error }}</div>{% endif %}

    <div class="mermaid-container">
        <div class="mermaid">
{{ s.mermaid }}
        </div>
    </div>

    <table class="res-table">
        <thead>
            <tr><th>#</th><th>Resource</th><th>Kind</th><th>Parent</th><th>Depends on</th><th>Status</th></tr>
        </thead>
        <tbody>
            {% for r in s.rows %}
            <tr>
                <td>{{ loop.index }}</td>
                <td><strong>{{ r.name }}</strong>{% if r.id %}<br><code>{{ r.id }}</code>{% endif %}</td>
                <td>{{ r.kind }}</td>
                <td>{{ r.parent }}</td>
                <td>{{ r.depends_on }}</td>
                <td><span class="status st-{{ r.status }}">{{ r.status }}</span></td>
            </tr>
            {% endfor %}
        </tbody>
    </table>

    {% if s.run.document.grants %}
    <table class="res-table">
        <thead><tr><th>Principal</th><th>Role</th><th>Scope</th></tr></thead>
        <tbody>
            {% for g in s.run.document.grants %}
            <tr><td>{{ g.principal }}</td><td>{{ g.role }}</td><td>{{ g.scope }}</td></tr>
            {% endfor %}
        </tbody>
    </table>
    {% endif %}

    {% if s.outputs %}
    <table class="res-table">
        <thead><tr><th>Output</th><th>Value</th></tr></thead>
        <tbody>
            {% for o in s.outputs %}
            <tr><td>{{ o.name }}</td><td><code>{{ o.value }}</code></td></tr>
            {% endfor %}
        </tbody>
    </table>
    {% endif %}
    {% endfor %}

    <footer>
        infragraph: declarative resource graph compiler
    </footer>

    <script>
        mermaid.initialize({ startOnLoad: true, theme: 'neutral', securityLevel: 'loose' });
    </script>
</body>
</html>
"""


def build_report(runs: List[StackRun], source_path: str) -> str:
    env = Environment(autoescape=True)
    template = env.from_string(_HTML_TEMPLATE)

    return template.render(
        generated=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
        source=source_path,
        version=__version__,
        resource_count=sum(len(r.document.resources) for r in runs),
        materialized_count=sum(len(r.materialized) for r in runs),
        failed_count=sum(1 for r in runs if r.error),
        stacks=[
            {
                "run": r,
                "rows": markdown.stack_rows(r),
                "outputs": markdown.output_rows(r),
                "mermaid": markdown.build_mermaid(r),
            }
            for r in runs
        ],
    )
