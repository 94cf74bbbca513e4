import json
import os
import subprocess
import sys

from click.testing import CliRunner

from infragraph.cli import cli
from infragraph.models.stack import StackRun
from infragraph.parsers import stack as stack_parser
from infragraph.reporters import html_reporter, markdown

FIXTURES = os.path.join(os.path.dirname(__file__), "fixtures")
CONFIG = os.path.join(FIXTURES, "infragraph.yaml")


def _fixture(name):
    return os.path.join(FIXTURES, name)


def test_module_execution():
    """Test that 'python -m infragraph' works."""
    result = subprocess.run(
        [sys.executable, "-m", "infragraph", "--help"],
        capture_output=True,
        text=True
    )
    assert result.returncode == 0
    assert "infragraph" in result.stdout


def test_sanitize_command():
    runner = CliRunner()
    result = runner.invoke(cli, ["sanitize", "My-Proj_01!!"])
    assert result.exit_code == 0
    assert result.output.strip() == "myproj01"

    result = runner.invoke(cli, ["sanitize", "ABCdef123", "--max-length", "5"])
    assert result.output.strip() == "abcde"


def _read_json(path):
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def test_plan_json_order(tmp_path):
    runner = CliRunner()
    out = str(tmp_path / "plan.json")
    result = runner.invoke(cli, ["plan", _fixture("service_bus.json"), "--config", CONFIG, "--format", "json", "-o", out])
    assert result.exit_code == 0
    report = _read_json(out)
    stack = report["stacks"][0]
    assert stack["order"] == ["ResourceGroup", "ServiceBusNamespace", "Queue"]
    assert stack["result"] is None
    assert stack["declared_outputs"]["service_bus_queue_name"] == "Queue.name"


def test_plan_cycle_fails(tmp_path):
    runner = CliRunner()
    out = str(tmp_path / "plan.json")
    result = runner.invoke(cli, ["plan", _fixture("cycle.json"), "--format", "json", "-o", out])
    assert result.exit_code == 1
    report = _read_json(out)
    assert "A -> B -> C -> A" in report["stacks"][0]["error"]


def test_plan_no_files():
    runner = CliRunner()
    result = runner.invoke(cli, ["plan", "does-not-exist.yaml"])
    assert result.exit_code == 2


def test_apply_writes_state_and_report(tmp_path):
    runner = CliRunner()
    state = tmp_path / "state.json"
    report = tmp_path / "report.md"
    result = runner.invoke(cli, [
        "apply", _fixture("storage_queue.yaml"),
        "--config", CONFIG,
        "--state", str(state),
        "--output", str(report),
    ])
    assert result.exit_code == 0

    with open(state, encoding="utf-8") as fh:
        data = json.load(fh)
    recorded = data["stacks"]["lab/storage-queue"]
    assert set(recorded["resources"]) == {"ResourceGroup", "StorageAccount", "StorageQueue"}
    assert len(recorded["grants"]) == 2

    with open(report, "rb") as fh:
        content = fh.read()
    assert b"\r\n" not in content
    text = content.decode("utf-8")
    assert "https://az204labaz204q.queue.core.windows.net" in text
    assert "```mermaid" in text


def test_apply_failure_then_resume(tmp_path):
    runner = CliRunner()
    state = str(tmp_path / "state.json")
    out = str(tmp_path / "report.json")
    args = ["apply", _fixture("service_bus.json"), "--config", CONFIG, "--state", state, "--format", "json", "-o", out]

    failed = runner.invoke(cli, args + ["--fail-at", "Queue"])
    assert failed.exit_code == 1
    report = _read_json(out)
    assert report["summary"]["failed"] == 1
    assert set(report["stacks"][0]["result"]["resources"]) == {"ResourceGroup", "ServiceBusNamespace"}

    resumed = runner.invoke(cli, args)
    assert resumed.exit_code == 0
    report = _read_json(out)
    outputs = report["stacks"][0]["outputs"]
    assert outputs["service_bus_namespace_fqdn"] == "az204-lab-sbns.servicebus.windows.net"


def test_apply_unknown_scope_issues_nothing(tmp_path):
    runner = CliRunner()
    state = tmp_path / "state.json"
    result = runner.invoke(cli, ["apply", _fixture("unknown_scope.json"), "--state", str(state), "--summary"])
    assert result.exit_code == 1
    assert not state.exists()


def test_ascii_mode_markdown():
    doc = stack_parser.parse_file(_fixture("storage_queue.yaml"))
    run = StackRun(document=doc, order=[r.name for r in doc.resources])

    report_emoji = markdown.build_report([run], "test.yaml", ascii_mode=False)
    assert "⏳ planned" in report_emoji

    report_ascii = markdown.build_report([run], "test.yaml", ascii_mode=True)
    assert "[PLANNED] planned" in report_ascii
    assert "⏳" not in report_ascii


def test_mermaid_edges():
    doc = stack_parser.parse_file(_fixture("storage_queue.yaml"))
    diagram = markdown.build_mermaid(StackRun(document=doc))
    assert "StorageQueue -.->|parent| StorageAccount" in diagram
    assert "StorageQueue -->|name| ResourceGroup" in diagram
    assert "==>|Storage Queue Data Message Sender| StorageQueue" in diagram


def test_html_report_escapes():
    doc = stack_parser.parse_data(
        {"name": "x", "resources": [{"name": "A", "kind": "blob"}],
         "outputs": {"o": "<script>alert(1)</script>"}},
        "x.yaml",
    )
    html = html_reporter.build_report([StackRun(document=doc, order=["A"])], "x.yaml")
    assert "&lt;script&gt;alert(1)" in html


def test_unparseable_file_is_input_error():
    runner = CliRunner()
    result = runner.invoke(cli, ["plan", _fixture("broken.yaml")])
    assert result.exit_code == 2


def test_document_without_valid_resources_is_input_error(tmp_path):
    f = tmp_path / "stack.yaml"
    f.write_text("resources:\n  - 42\n")
    runner = CliRunner()
    result = runner.invoke(cli, ["plan", str(f)])
    assert result.exit_code == 2


def test_invalid_max_length_still_plans(tmp_path):
    f = tmp_path / "stack.yaml"
    f.write_text(
        "resources:\n"
        "  - name: A\n"
        "    kind: storage-account\n"
        "    config:\n"
        "      account_name: {sanitize: abc, max_length: big}\n"
    )
    runner = CliRunner()
    result = runner.invoke(cli, ["plan", str(f), "-o", str(tmp_path / "plan.md")])
    assert result.exit_code == 0
