# src/rnadeseq/cli.py
"""rnadeseq Command Line Interface.

Entry point for the rnadeseq CLI tool.
"""

from __future__ import annotations

import shlex
import sys
from pathlib import Path
from typing import Annotated, Any, Literal

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from rnadeseq import __version__
from rnadeseq.cli_formatters import create_console_formatters, create_json_formatters, subscribe_formatters
from rnadeseq.contracts.errors import InputResolutionError
from rnadeseq.contracts.run import RunContext
from rnadeseq.core.config import PipelineSettings, load_settings
from rnadeseq.core.dag import GraphValidationError, StageGraph
from rnadeseq.core.dag.builder import build_stage_graph
from rnadeseq.core.events import EventBus
from rnadeseq.pipeline import execute_run, prepare_run
from rnadeseq.stages import catalogue

__all__ = [
    "app",
    "load_settings",  # Re-exported from config for convenience
]

app = typer.Typer(
    name="rnadeseq",
    help="rnadeseq: differential expression, pathway, metagenomics and report workflow.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"rnadeseq version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    Args:
        env_file: Explicit path to .env file. If None, searches for .env
                 in current directory and parent directories.

    Returns:
        True if .env was found and loaded, False otherwise.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(
                f"Error: .env file not found: {env_file}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
        exists=False,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """rnadeseq: differential expression, pathway, metagenomics and report workflow."""
    from rnadeseq.core.logging import configure_logging

    log_level = "DEBUG" if verbose else "INFO"
    configure_logging(json_output=json_logs, level=log_level)

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )


# Shared run/validate options. Flag spellings follow the established
# workflow parameters so existing launch scripts keep working.
ParamsFile = Annotated[Path | None, typer.Option("--params-file", "-p", help="YAML params file.")]
NoReportNeeded = Annotated[bool, typer.Option("--NoReportNeeded", help="Skip the report; all report inputs become optional.")]
Rawcounts = Annotated[str | None, typer.Option("--rawcounts", help="Raw count table (TSV).")]
Metadata = Annotated[str | None, typer.Option("--metadata", help="Sample metadata table (TSV).")]
Model = Annotated[str | None, typer.Option("--model", help="Linear model file.")]
Contrasts = Annotated[str | None, typer.Option("--contrasts", help="Contrast table, or DEFAULT.")]
Genelist = Annotated[str | None, typer.Option("--genelist", help="Genes of interest, or NO_FILE.")]
KeggBlacklist = Annotated[str | None, typer.Option("--kegg_blacklist", help="KEGG pathways to exclude, or NO_FILE.")]
ProjectSummary = Annotated[str | None, typer.Option("--project_summary", help="Project summary for the report.")]
Versions = Annotated[str | None, typer.Option("--versions", help="Software versions of the upstream analysis.")]
ReportOptions = Annotated[str | None, typer.Option("--report_options", help="Report options (YAML).")]
Multiqc = Annotated[str | None, typer.Option("--multiqc", help="MultiQC archive (zip).")]
ReportTemplate = Annotated[str | None, typer.Option("--report_template", help="Report template archive (zip).")]
Quote = Annotated[str | None, typer.Option("--quote", help="Signed quote document.")]
Reads = Annotated[str | None, typer.Option("--reads", help="Read glob, e.g. 'data/*_R{1,2}.fastq.gz'.")]
SingleEnd = Annotated[bool, typer.Option("--single_end", help="Each matched read file is its own sample.")]
NucleotideDb = Annotated[str | None, typer.Option("--nucleotide_db", help="HUMAnN2 nucleotide database directory.")]
ProteinDb = Annotated[str | None, typer.Option("--protein_db", help="HUMAnN2 protein database directory.")]
TaxonomicDb = Annotated[str | None, typer.Option("--taxonomic_db", help="MetaPhlAn2 marker sequences to index.")]
Species = Annotated[str | None, typer.Option("--species", help="Species, e.g. Hsapiens or Mmusculus.")]
LogFC = Annotated[float | None, typer.Option("--logFCthreshold", help="Log2 fold-change threshold.")]
Relevel = Annotated[str | None, typer.Option("--relevel", help="Reference level(s), e.g. 'condition:control'.")]
BatchEffect = Annotated[bool, typer.Option("--batch_effect", help="Account for batch effects.")]
MinDegPathway = Annotated[int | None, typer.Option("--min_DEG_pathway", help="Minimum DE genes per plotted pathway.")]
Outdir = Annotated[Path | None, typer.Option("--outdir", help="Root of published outputs.")]
WorkDir = Annotated[Path | None, typer.Option("--work-dir", "-w", help="Root of per-stage working directories.")]
Name = Annotated[str | None, typer.Option("--name", help="Custom run name.")]
Email = Annotated[str | None, typer.Option("--email", help="Send the completion summary to this address.")]
PlaintextEmail = Annotated[bool, typer.Option("--plaintext_email", help="Send plain-text email only.")]
MaxAttachmentSize = Annotated[
    str | None, typer.Option("--max_attachment_size", help="Largest report archive to attach, e.g. '25.MB'.")
]
MaxCpus = Annotated[int | None, typer.Option("--max_cpus", help="Cap on any stage's CPU request.")]
MaxMemory = Annotated[str | None, typer.Option("--max_memory", help="Cap on any stage's memory, e.g. '128.GB'.")]
MaxTime = Annotated[str | None, typer.Option("--max_time", help="Cap on any stage's time, e.g. '240.h'.")]
MaxWorkers = Annotated[int | None, typer.Option("--max_workers", help="Stages running concurrently.")]
MaxRetries = Annotated[int | None, typer.Option("--max_retries", help="Retries for resource-killed stages.")]

# Flat option name -> nested settings path
_OVERRIDE_PATHS: dict[str, tuple[str, ...]] = {
    "name": ("name",),
    "no_report_needed": ("no_report_needed",),
    "outdir": ("outdir",),
    "work_dir": ("work_dir",),
    "rawcounts": ("inputs", "rawcounts"),
    "metadata": ("inputs", "metadata"),
    "model": ("inputs", "model"),
    "contrasts": ("inputs", "contrasts"),
    "genelist": ("inputs", "genelist"),
    "kegg_blacklist": ("inputs", "kegg_blacklist"),
    "project_summary": ("inputs", "project_summary"),
    "versions": ("inputs", "versions"),
    "report_options": ("inputs", "report_options"),
    "multiqc": ("inputs", "multiqc"),
    "report_template": ("inputs", "report_template"),
    "quote": ("inputs", "quote"),
    "reads": ("metagenomics", "reads"),
    "single_end": ("metagenomics", "single_end"),
    "nucleotide_db": ("metagenomics", "nucleotide_db"),
    "protein_db": ("metagenomics", "protein_db"),
    "taxonomic_db": ("metagenomics", "taxonomic_db"),
    "species": ("analysis", "species"),
    "logfc_threshold": ("analysis", "logfc_threshold"),
    "relevel": ("analysis", "relevel"),
    "batch_effect": ("analysis", "batch_effect"),
    "min_deg_pathway": ("analysis", "min_deg_pathway"),
    "email": ("notification", "email"),
    "plaintext_email": ("notification", "plaintext_email"),
    "max_attachment_size": ("notification", "max_attachment_size"),
    "max_cpus": ("resources", "max_cpus"),
    "max_memory": ("resources", "max_memory"),
    "max_time": ("resources", "max_time"),
    "max_workers": ("resources", "max_workers"),
    "max_retries": ("resources", "max_retries"),
}


def build_overrides(**options: Any) -> dict[str, Any]:
    """Nest flat command-line options into a settings override dict.

    Unset options (None) and boolean flags left off (False) are dropped so
    they never mask a value from the params file or environment.
    """
    overrides: dict[str, Any] = {}
    for key, value in options.items():
        if value is None or value is False:
            continue
        *parents, leaf = _OVERRIDE_PATHS[key]
        target = overrides
        for parent in parents:
            target = target.setdefault(parent, {})
        target[leaf] = value
    return overrides


def _format_validation_error(
    title: str,
    message: str,
    hint: str | None = None,
    details: list[str] | None = None,
) -> None:
    """Display a formatted validation error with optional hint and details."""
    from rich.console import Console
    from rich.panel import Panel
    from rich.text import Text

    console = Console(stderr=True)

    content = Text()
    content.append(message, style="white")

    if details:
        content.append("\n\n")
        for detail in details:
            content.append(f"  • {detail}\n", style="dim")

    if hint:
        content.append("\n")
        content.append("Hint: ", style="yellow bold")
        content.append(hint, style="yellow")

    panel = Panel(
        content,
        title=f"[red bold]❌ {title}[/]",
        border_style="red",
        expand=False,
    )
    console.print(panel)


def _load_settings_or_exit(params_file: Path | None, overrides: dict[str, Any]) -> PipelineSettings:
    try:
        return load_settings(params_file, overrides)
    except (YamlParserError, YamlScannerError) as e:
        name = params_file.name if params_file is not None else "params file"
        _format_validation_error(
            title="YAML Syntax Error",
            message=f"Failed to parse {name}",
            details=[str(e.problem)] if hasattr(e, "problem") else None,
            hint="Check for unclosed brackets, incorrect indentation, or invalid characters.",
        )
        raise typer.Exit(1) from None
    except FileNotFoundError as e:
        _format_validation_error(
            title="File Not Found",
            message=str(e),
            hint="Check the path and ensure the file exists.",
        )
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _plan_or_exit(settings: PipelineSettings) -> tuple[RunContext, StageGraph]:
    """Resolve inputs and build the stage graph, printing every problem found."""
    try:
        context = prepare_run(settings)
    except InputResolutionError as e:
        typer.echo(f"Input errors ({len(e.errors)}):", err=True)
        for error in e.errors:
            typer.echo(f"  - {error}", err=True)
        raise typer.Exit(1) from None

    try:
        graph = build_stage_graph(context)
    except GraphValidationError as e:
        _format_validation_error(
            title="Pipeline Graph Error",
            message=str(e),
            hint="Check stage inputs reference existing outputs and parameters.",
        )
        raise typer.Exit(1) from None
    return context, graph


@app.command()
def run(
    params_file: ParamsFile = None,
    no_report_needed: NoReportNeeded = False,
    rawcounts: Rawcounts = None,
    metadata: Metadata = None,
    model: Model = None,
    contrasts: Contrasts = None,
    genelist: Genelist = None,
    kegg_blacklist: KeggBlacklist = None,
    project_summary: ProjectSummary = None,
    versions: Versions = None,
    report_options: ReportOptions = None,
    multiqc: Multiqc = None,
    report_template: ReportTemplate = None,
    quote: Quote = None,
    reads: Reads = None,
    single_end: SingleEnd = False,
    nucleotide_db: NucleotideDb = None,
    protein_db: ProteinDb = None,
    taxonomic_db: TaxonomicDb = None,
    species: Species = None,
    logfc_threshold: LogFC = None,
    relevel: Relevel = None,
    batch_effect: BatchEffect = False,
    min_deg_pathway: MinDegPathway = None,
    outdir: Outdir = None,
    work_dir: WorkDir = None,
    name: Name = None,
    email: Email = None,
    plaintext_email: PlaintextEmail = False,
    max_attachment_size: MaxAttachmentSize = None,
    max_cpus: MaxCpus = None,
    max_memory: MaxMemory = None,
    max_time: MaxTime = None,
    max_workers: MaxWorkers = None,
    max_retries: MaxRetries = None,
    output_format: Literal["console", "json"] = typer.Option(
        "console",
        "--format",
        "-f",
        help="Output format: 'console' (human-readable) or 'json' (structured JSON).",
    ),
) -> None:
    """Execute a workflow run.

    Exits 0 when every scheduled stage completed, 1 otherwise.
    """
    overrides = build_overrides(
        name=name,
        no_report_needed=no_report_needed,
        outdir=outdir,
        work_dir=work_dir,
        rawcounts=rawcounts,
        metadata=metadata,
        model=model,
        contrasts=contrasts,
        genelist=genelist,
        kegg_blacklist=kegg_blacklist,
        project_summary=project_summary,
        versions=versions,
        report_options=report_options,
        multiqc=multiqc,
        report_template=report_template,
        quote=quote,
        reads=reads,
        single_end=single_end,
        nucleotide_db=nucleotide_db,
        protein_db=protein_db,
        taxonomic_db=taxonomic_db,
        species=species,
        logfc_threshold=logfc_threshold,
        relevel=relevel,
        batch_effect=batch_effect,
        min_deg_pathway=min_deg_pathway,
        email=email,
        plaintext_email=plaintext_email,
        max_attachment_size=max_attachment_size,
        max_cpus=max_cpus,
        max_memory=max_memory,
        max_time=max_time,
        max_workers=max_workers,
        max_retries=max_retries,
    )
    settings = _load_settings_or_exit(params_file, overrides)
    context, graph = _plan_or_exit(settings)

    event_bus = EventBus()
    formatters = create_json_formatters() if output_format == "json" else create_console_formatters()
    subscribe_formatters(event_bus, formatters)

    outcome = execute_run(
        settings,
        context,
        graph=graph,
        event_bus=event_bus,
        command_line=shlex.join(sys.argv),
    )

    if output_format == "console":
        typer.echo(f"Completion report: {outcome.completion.html_path}")
        if outcome.completion.notification.delivered:
            typer.echo(f"Summary e-mailed to {settings.notification.email} ({outcome.completion.notification.tier})")

    if not outcome.success:
        raise typer.Exit(1)


@app.command()
def validate(
    params_file: ParamsFile = None,
    no_report_needed: NoReportNeeded = False,
    rawcounts: Rawcounts = None,
    metadata: Metadata = None,
    model: Model = None,
    contrasts: Contrasts = None,
    genelist: Genelist = None,
    kegg_blacklist: KeggBlacklist = None,
    project_summary: ProjectSummary = None,
    versions: Versions = None,
    report_options: ReportOptions = None,
    multiqc: Multiqc = None,
    report_template: ReportTemplate = None,
    quote: Quote = None,
    reads: Reads = None,
    single_end: SingleEnd = False,
    nucleotide_db: NucleotideDb = None,
    protein_db: ProteinDb = None,
    taxonomic_db: TaxonomicDb = None,
    species: Species = None,
    outdir: Outdir = None,
    work_dir: WorkDir = None,
) -> None:
    """Resolve inputs and plan the stage graph without running anything."""
    overrides = build_overrides(
        no_report_needed=no_report_needed,
        outdir=outdir,
        work_dir=work_dir,
        rawcounts=rawcounts,
        metadata=metadata,
        model=model,
        contrasts=contrasts,
        genelist=genelist,
        kegg_blacklist=kegg_blacklist,
        project_summary=project_summary,
        versions=versions,
        report_options=report_options,
        multiqc=multiqc,
        report_template=report_template,
        quote=quote,
        reads=reads,
        single_end=single_end,
        nucleotide_db=nucleotide_db,
        protein_db=protein_db,
        taxonomic_db=taxonomic_db,
        species=species,
    )
    settings = _load_settings_or_exit(params_file, overrides)
    context, graph = _plan_or_exit(settings)

    typer.echo("✅ Run configuration valid!")
    typer.echo(f"  Mode: {context.mode.value}")
    typer.echo(f"  Samples: {len(context.samples)}")
    typer.echo(f"  Graph: {graph.stage_count} stages, {graph.edge_count} edges")
    for stage_name in graph.topological_order():
        stage = graph.get_stage(stage_name)
        upstream = graph.upstream(stage_name)
        after = f" (after {', '.join(upstream)})" if upstream else ""
        typer.echo(f"    {stage_name} [{stage.branch.value}]{after}")


@app.command("stages")
def stages_list() -> None:
    """List every stage the workflow can schedule."""
    from rich.console import Console
    from rich.table import Table

    table = Table(title="Stages")
    table.add_column("Stage")
    table.add_column("Branch")
    table.add_column("Publishes to")
    table.add_column("Report only")
    table.add_column("Description")
    for entry in catalogue():
        table.add_row(
            entry.name,
            entry.branch.value,
            entry.publish_dir or "-",
            "yes" if entry.report_only else "no",
            entry.description,
        )
    Console().print(table)


if __name__ == "__main__":
    app()
