"""
infragraph CLI entry point.
"""
import os
import sys
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from infragraph import __version__
from infragraph.config import ProjectConfig, load_config
from infragraph.detect import detect_format
from infragraph.errors import GraphError
from infragraph.graph import builder
from infragraph.graph.naming import sanitize_name
from infragraph.models.resource import ResolvedResource, ResourceSpec
from infragraph.models.stack import BuildResult, StackDocument, StackRun
from infragraph.parsers import stack as stack_parser
from infragraph.provisioners.local import LocalProvisioner
from infragraph.provisioners.state import StateFileProvisioner
from infragraph.reporters import html_reporter, json_reporter, markdown

console = Console(stderr=True)

_BANNER = r"""
  _        __                                 _
 (_)_ __  / _|_ __ __ _  __ _ _ __ __ _ _ __ | |__
 | | '_ \| |_| '__/ _` |/ _` | '__/ _` | '_ \| '_ \
 | | | | |  _| | | (_| | (_| | | | (_| | |_) | | | |
 |_|_| |_|_| |_|  \__,_|\__, |_|  \__,_| .__/|_| |_|
                        |___/          |_|
"""

_STATUS_COLORS = {
    "created": "green",
    "failed": "bold red",
    "planned": "dim",
}


def _print_banner(no_color: bool = False) -> None:
    c = Console(stderr=True, no_color=no_color)
    c.print(f"[bold blue]{_BANNER}[/bold blue]")
    c.print(f"  [dim]declarative resource graph compiler[/dim]   [dim]v{__version__}[/dim]\n")


def _collect_files(paths: Tuple[str, ...]) -> List[str]:
    """Expand directories into file paths."""
    files = []
    for p in paths:
        if os.path.isfile(p):
            files.append(p)
        elif os.path.isdir(p):
            for root, _, fnames in os.walk(p):
                for fname in sorted(fnames):
                    files.append(os.path.join(root, fname))
        else:
            console.print(f"[yellow]Warning:[/yellow] '{p}' does not exist, skipping.")
    return files


def _parse_files(file_paths: List[str], project: ProjectConfig) -> List[StackDocument]:
    docs: List[StackDocument] = []
    for fp in file_paths:
        if detect_format(fp) == "unknown":
            console.print(f"[dim]Skipping unsupported file:[/dim] {fp}")
            continue
        docs.append(stack_parser.parse_file(fp, project))
    return docs


def _load_project(config_path: Optional[str], stack: Optional[str], stderr: Console) -> ProjectConfig:
    try:
        return load_config(config_path, stack)
    except (OSError, ValueError) as exc:
        stderr.print(f"[red]Config error:[/red] {exc}")
        sys.exit(2)


def _load_documents(paths: Tuple[str, ...], project: ProjectConfig, stderr: Console) -> List[StackDocument]:
    with stderr.status("[bold]Collecting files…"):
        file_paths = _collect_files(paths)

    if not file_paths:
        stderr.print("[red]No files found.[/red]")
        sys.exit(2)

    with stderr.status(f"[bold]Parsing {len(file_paths)} file(s)…"):
        docs = [d for d in _parse_files(file_paths, project) if d.resources]

    if not docs:
        stderr.print("[red]No stack documents with resources found in the provided paths.[/red]")
        sys.exit(2)

    stderr.print(
        f"Found [bold]{len(docs)}[/bold] stack(s) with "
        f"[bold]{sum(len(d.resources) for d in docs)}[/bold] resources."
    )
    return docs


def _print_summary_table(runs: List[StackRun], no_color: bool) -> None:
    """Print a rich summary table to stderr."""
    tbl = Table(title="Provisioning Summary", show_header=True, header_style="bold")
    tbl.add_column("Stack", width=20)
    tbl.add_column("#", style="dim", width=3)
    tbl.add_column("Resource", width=30)
    tbl.add_column("Kind", width=22)
    tbl.add_column("Status", width=9)
    tbl.add_column("Id")

    for run in runs:
        for i, row in enumerate(markdown.stack_rows(run), 1):
            color = _STATUS_COLORS.get(row["status"], "") if not no_color else ""
            tbl.add_row(
                run.document.name,
                str(i),
                row["name"],
                row["kind"],
                f"[{color}]{row['status']}[/{color}]" if color else row["status"],
                row["id"],
            )

    Console(stderr=True, no_color=no_color).print(tbl)


def _write_report(runs: List[StackRun], output_format: str, output: Optional[str], source: str,
                  ascii_mode: bool, stderr: Console) -> None:
    fmt = output_format.lower()
    if fmt == "json":
        report_content = json_reporter.build_report(runs, source)
    elif fmt == "html":
        report_content = html_reporter.build_report(runs, source)
    else:
        report_content = markdown.build_report(runs, source, ascii_mode=ascii_mode)

    if output:
        with open(output, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(report_content)
        stderr.print(f"Report written to [bold]{output}[/bold]")
    else:
        click.echo(report_content)


def _format_option(fn):
    return click.option(
        "--format", "output_format",
        type=click.Choice(["markdown", "json", "html"], case_sensitive=False),
        default="markdown",
        show_default=True,
        help="Report format.",
    )(fn)


def _common_options(fn):
    for opt in reversed([
        click.option("--output", "-o", type=click.Path(), default=None,
                     help="Write report to this file (default: stdout)."),
        click.option("--config", "config_path", type=click.Path(), default=None,
                     help="Project settings file (default: ./infragraph.yaml if present)."),
        click.option("--stack", default=None, help="Override the stack name from the config."),
        click.option("--ascii", is_flag=True, default=False,
                     help="Use ASCII-only status indicators (no emojis)."),
        click.option("--no-color", is_flag=True, default=False,
                     help="Disable rich terminal color output."),
    ]):
        fn = opt(fn)
    return _format_option(fn)


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(__version__)
@click.pass_context
def cli(ctx):
    """infragraph: declarative resource graph compiler."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit()


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path())
@_common_options
def plan(
    paths: Tuple[str, ...],
    output_format: str,
    output: Optional[str],
    config_path: Optional[str],
    stack: Optional[str],
    ascii: bool,
    no_color: bool,
) -> None:
    """
    Validate stack documents and report their evaluation order.

    Nothing is provisioned. PATHS can be files or directories.
    """
    _print_banner(no_color)
    stderr = Console(stderr=True, no_color=no_color)
    project = _load_project(config_path, stack, stderr)
    docs = _load_documents(paths, project, stderr)

    runs: List[StackRun] = []
    failed = 0
    for doc in docs:
        try:
            order = builder.plan(doc.resources, doc.grants, doc.outputs)
            runs.append(StackRun(document=doc, order=order))
        except GraphError as exc:
            failed += 1
            stderr.print(f"[red]{doc.name}:[/red] {exc}")
            runs.append(StackRun(document=doc, error=str(exc), failed_resource=exc.name))

    if output:
        _print_summary_table(runs, no_color)
    _write_report(runs, output_format, output, ", ".join(paths), ascii, stderr)
    sys.exit(1 if failed else 0)


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path())
@_common_options
@click.option(
    "--state", "state_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="JSON state file; resources recorded there are not provisioned again.",
)
@click.option(
    "--fail-at",
    multiple=True,
    help="Simulate a provisioning failure for this resource name (repeatable).",
)
@click.option(
    "--summary",
    is_flag=True,
    default=False,
    help="Print terminal summary table only, do not write a full report.",
)
def apply(
    paths: Tuple[str, ...],
    output_format: str,
    output: Optional[str],
    config_path: Optional[str],
    stack: Optional[str],
    ascii: bool,
    no_color: bool,
    state_path: Optional[str],
    fail_at: Tuple[str, ...],
    summary: bool,
) -> None:
    """
    Build stack documents against the local control plane.

    Resources are materialized in dependency order, then grants are issued
    and outputs resolved. With --state, a re-run resumes where the previous
    one stopped.
    """
    _print_banner(no_color)
    stderr = Console(stderr=True, no_color=no_color)
    project = _load_project(config_path, stack, stderr)
    docs = _load_documents(paths, project, stderr)

    def _progress(spec: ResourceSpec, resource: ResolvedResource) -> None:
        stderr.print(f"  [green]+[/green] {spec.kind} [bold]{spec.name}[/bold] [dim]{resource.get('id', '')}[/dim]")

    runs: List[StackRun] = []
    failed = 0
    for doc in docs:
        provisioner = LocalProvisioner(project.subscription_id, project.location, fail_at=fail_at)
        if state_path:
            try:
                provisioner = StateFileProvisioner(provisioner, state_path, stack=f"{project.stack}/{doc.name}")
            except (OSError, ValueError) as exc:
                stderr.print(f"[red]State file error:[/red] {exc}")
                sys.exit(2)

        stderr.print(f"[bold]{doc.name}[/bold] ({doc.source_file})")
        order: List[str] = []
        try:
            order = builder.plan(doc.resources, doc.grants, doc.outputs)
            result = builder.build(doc.resources, provisioner, doc.grants, doc.outputs, progress=_progress)
        except GraphError as exc:
            failed += 1
            stderr.print(f"[red]Error:[/red] {exc}")
            partial = BuildResult(order=[n for n in order if n in exc.resolved], resources=exc.resolved)
            runs.append(StackRun(document=doc, order=order, result=partial, error=str(exc),
                                 failed_resource=exc.name))
            continue

        for g in result.grants:
            stderr.print(f"  [cyan]~[/cyan] grant [bold]{g.role}[/bold] to {g.principal} on {g.scope}")
        runs.append(StackRun(document=doc, order=order, result=result))

    if summary or output:
        _print_summary_table(runs, no_color)

    if not summary:
        _write_report(runs, output_format, output, ", ".join(paths), ascii, stderr)

    if failed:
        stderr.print(f"[red]{failed} stack(s) failed.[/red]")
    sys.exit(1 if failed else 0)


@cli.command()
@click.argument("raw")
@click.option("--max-length", default=24, show_default=True, type=int,
              help="Maximum length of the resulting name.")
def sanitize(raw: str, max_length: int) -> None:
    """Fold RAW into a lowercase alphanumeric resource name."""
    click.echo(sanitize_name(raw, max_length))


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
