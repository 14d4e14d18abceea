# src/rnadeseq/stages.py
"""Pipeline catalogue: declared parameters and the concrete stages.

Every stage wraps external tools; nothing here computes anything
scientific. The builder (rnadeseq.core.dag.builder) decides which of these
stages a run schedules.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from rnadeseq.contracts.commands import (
    CommandTemplate,
    Formatted,
    InputArg,
    InputOption,
    Repeated,
    ResourceOption,
    Switch,
    Token,
    ValueOption,
)
from rnadeseq.contracts.enums import ArtifactKind, Branch, ParameterKind
from rnadeseq.contracts.parameters import DEFAULT_CONTRASTS, NO_FILE, ParameterSpec
from rnadeseq.contracts.results import ArtifactRef
from rnadeseq.contracts.run import Sample
from rnadeseq.core.dag.models import (
    InputBinding,
    OutputSpec,
    ParameterSource,
    StageSpec,
    StaticSource,
)
from rnadeseq.core.resources import ResourceRequest

ASSETS_DIR = Path(__file__).parent / "assets"
OUTPUT_DOCUMENTATION = ASSETS_DIR / "output.md"

METAPHLAN_INDEX = "mpa_v20_m200"
HUMANN2_TABLES = ("genefamilies", "pathabundance", "pathcoverage")

# Stages that only exist to build the final report. Never scheduled with
# --NoReportNeeded.
REPORT_ONLY_STAGES = frozenset({"software_versions", "report", "output_documentation"})


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------

PARAMETERS: tuple[ParameterSpec, ...] = (
    ParameterSpec("rawcounts", "Gene Counts", "--rawcounts", report_required=True),
    ParameterSpec("metadata", "Metadata", "--metadata", report_required=True, required_with=("rawcounts",)),
    ParameterSpec("model", "Model", "--model", report_required=True, required_with=("rawcounts",)),
    ParameterSpec("contrasts", "Contrasts", "--contrasts", sentinel=DEFAULT_CONTRASTS),
    ParameterSpec("genelist", "Genes of interest", "--genelist", sentinel=NO_FILE),
    ParameterSpec("kegg_blacklist", "KEGG blacklist", "--kegg_blacklist", sentinel=NO_FILE),
    ParameterSpec("project_summary", "Project summary", "--project_summary", report_required=True),
    ParameterSpec("versions", "Software versions", "--versions", report_required=True),
    ParameterSpec("report_options", "Report options", "--report_options", report_required=True),
    ParameterSpec("multiqc", "MultiQC archive", "--multiqc", report_required=True),
    ParameterSpec("report_template", "Report template", "--report_template", report_required=True),
    ParameterSpec("quote", "Signed quote", "--quote", report_required=True),
    ParameterSpec(
        "nucleotide_db",
        "Nucleotide database",
        "--nucleotide_db",
        kind=ParameterKind.DIRECTORY,
        sentinel=None,
        required_with=("reads",),
    ),
    ParameterSpec(
        "protein_db",
        "Protein database",
        "--protein_db",
        kind=ParameterKind.DIRECTORY,
        sentinel=None,
        required_with=("reads",),
    ),
    ParameterSpec("taxonomic_db", "Taxonomic database", "--taxonomic_db", sentinel=None, required_with=("reads",)),
)

PARAMETER_NAMES: frozenset[str] = frozenset(p.name for p in PARAMETERS)


def _param(alias: str, *, stage_as: str | None = None, unpack: bool = False) -> InputBinding:
    return InputBinding(alias, ParameterSource(alias), stage_as=stage_as, unpack=unpack)


# ---------------------------------------------------------------------------
# Differential expression branch
# ---------------------------------------------------------------------------


def deseq2_stage() -> StageSpec:
    return StageSpec(
        name="deseq2",
        branch=Branch.RNASEQ,
        description="Differential gene expression with DESeq2",
        inputs=(
            _param("rawcounts"),
            _param("metadata"),
            _param("model"),
            _param("contrasts"),
            _param("genelist"),
        ),
        commands=(
            CommandTemplate(
                "DESeq2.R",
                (
                    InputOption("--counts", "rawcounts"),
                    InputOption("--metadata", "metadata"),
                    InputOption("--design", "model"),
                    ValueOption("--logFCthreshold", "logfc_threshold"),
                    InputOption("--contrasts", "contrasts"),
                    ValueOption("--relevel", "relevel"),
                    InputOption("--genelist", "genelist"),
                    Switch("--batchEffect", "batch_effect"),
                ),
            ),
        ),
        outputs=(
            OutputSpec("archive", ArtifactKind.ZIP_ARCHIVE, "DESeq2.zip", members=("differential_gene_expression",)),
            OutputSpec("contrast_names", ArtifactKind.FILE, "contrast_names.txt", publish=False),
            OutputSpec(
                "de_tables",
                ArtifactKind.FILE_SET,
                "differential_gene_expression/DE_genes_tables/*.tsv",
                optional=True,
                publish=False,
            ),
            OutputSpec(
                "normalized_counts",
                ArtifactKind.FILE,
                "differential_gene_expression/gene_counts_tables/rlog_transformed_gene_counts.tsv",
                publish=False,
            ),
        ),
        resources=ResourceRequest(cpus=2, memory_gb=16.0, time_seconds=8 * 3600.0),
        publish_dir="DESeq2",
        scratch_dirs=("differential_gene_expression",),
    )


def pathway_stage() -> StageSpec:
    return StageSpec(
        name="pathway",
        branch=Branch.RNASEQ,
        description="Pathway enrichment with gProfileR",
        inputs=(
            InputBinding("de_genes", ArtifactRef("deseq2", "de_tables"), stage_as="DE_genes/"),
            InputBinding("normalized_counts", ArtifactRef("deseq2", "normalized_counts")),
            _param("metadata"),
            _param("model"),
            _param("genelist"),
            _param("kegg_blacklist"),
        ),
        commands=(
            CommandTemplate(
                "pathway_analysis.R",
                (
                    InputOption("--dirContrasts", "de_genes"),
                    InputOption("--metadata", "metadata"),
                    InputOption("--model", "model"),
                    InputOption("--normCounts", "normalized_counts"),
                    ValueOption("--species", "species"),
                    InputOption("--genelist", "genelist"),
                    InputOption("--keggblacklist", "kegg_blacklist"),
                    ValueOption("--min_DEG_pathway", "min_deg_pathway"),
                ),
            ),
        ),
        outputs=(OutputSpec("archive", ArtifactKind.ZIP_ARCHIVE, "pathway_analysis.zip", members=("pathway_analysis",)),),
        resources=ResourceRequest(cpus=2, memory_gb=16.0, time_seconds=8 * 3600.0),
        publish_dir="gProfileR",
        scratch_dirs=("pathway_analysis",),
    )


# ---------------------------------------------------------------------------
# Report branch
# ---------------------------------------------------------------------------


def software_versions_stage() -> StageSpec:
    return StageSpec(
        name="software_versions",
        branch=Branch.REPORT,
        description="Collect tool versions",
        commands=(
            CommandTemplate(
                "scrape_software_versions.py",
                (
                    ValueOption("--pipeline-version", "pipeline_version"),
                    Token("--output"),
                    Token("software_versions.csv"),
                ),
            ),
        ),
        outputs=(OutputSpec("versions", ArtifactKind.FILE, "software_versions.csv"),),
        resources=ResourceRequest(cpus=1, memory_gb=2.0, time_seconds=3600.0),
        publish_dir="pipeline_info",
    )


def report_stage(*, with_pathway: bool = True) -> StageSpec:
    """Render the R Markdown report and package it with its inputs."""
    inputs = [
        InputBinding("deseq2_archive", ArtifactRef("deseq2", "archive"), stage_as="DESeq2.zip"),
        InputBinding("contrast_names", ArtifactRef("deseq2", "contrast_names")),
        InputBinding("pipeline_versions", ArtifactRef("software_versions", "versions")),
        _param("multiqc", stage_as="QC", unpack=True),
        _param("report_template", stage_as="template", unpack=True),
        _param("project_summary"),
        _param("versions"),
        _param("report_options"),
        _param("metadata"),
        _param("model"),
        _param("contrasts"),
        _param("genelist"),
        _param("quote"),
    ]
    members = ["RNAseq_report.html", "DESeq2.zip", "QC"]
    if with_pathway:
        inputs.insert(1, InputBinding("pathway_archive", ArtifactRef("pathway", "archive"), stage_as="pathway_analysis.zip"))
        members.append("pathway_analysis.zip")

    return StageSpec(
        name="report",
        branch=Branch.REPORT,
        description="Render and package the final report",
        inputs=tuple(inputs),
        commands=(
            CommandTemplate(
                "Execute_report.R",
                (
                    InputOption("--report", "report_template"),
                    Token("--output"),
                    Token("RNAseq_report.html"),
                    InputOption("--proj_summary", "project_summary"),
                    InputOption("--versions", "versions"),
                    InputOption("--pipeline_versions", "pipeline_versions"),
                    InputOption("--config", "report_options"),
                    InputOption("--metadata", "metadata"),
                    InputOption("--model", "model"),
                    InputOption("--contrasts", "contrasts"),
                    InputOption("--contrast_names", "contrast_names"),
                    InputOption("--genelist", "genelist"),
                    InputOption("--quote", "quote"),
                    InputOption("--deseq2", "deseq2_archive"),
                    InputOption("--pathway", "pathway_archive"),
                    InputOption("--qc", "multiqc"),
                    ValueOption("--organism", "species"),
                    ValueOption("--log_FC", "logfc_threshold"),
                ),
            ),
        ),
        outputs=(OutputSpec("archive", ArtifactKind.ZIP_ARCHIVE, "report.zip", members=tuple(members)),),
        resources=ResourceRequest(cpus=1, memory_gb=8.0, time_seconds=2 * 3600.0),
        publish_dir="report",
    )


def output_documentation_stage() -> StageSpec:
    return StageSpec(
        name="output_documentation",
        branch=Branch.REPORT,
        description="Render the results description",
        inputs=(InputBinding("output_docs", StaticSource((OUTPUT_DOCUMENTATION,)), stage_as="output.md"),),
        commands=(
            CommandTemplate(
                "markdown_to_html.r",
                (InputArg("output_docs"), Token("results_description.html")),
            ),
        ),
        outputs=(OutputSpec("html", ArtifactKind.FILE, "results_description.html"),),
        resources=ResourceRequest(cpus=1, memory_gb=2.0, time_seconds=3600.0),
        publish_dir="Documentation",
    )


# ---------------------------------------------------------------------------
# Metagenomics branch
# ---------------------------------------------------------------------------


def prepare_reference_stage() -> StageSpec:
    """Index the MetaPhlAn2 markers once; every sample shares the index."""
    return StageSpec(
        name="prepare_reference",
        branch=Branch.METAGENOMICS,
        description="Build the MetaPhlAn2 bowtie2 index",
        inputs=(_param("taxonomic_db"),),
        commands=(
            CommandTemplate(
                "bowtie2-build",
                (
                    ResourceOption("--threads", "cpus"),
                    InputArg("taxonomic_db"),
                    Token(f"metaphlan_db/{METAPHLAN_INDEX}"),
                ),
            ),
        ),
        outputs=(OutputSpec("metaphlan_db", ArtifactKind.FILE, "metaphlan_db", publish=False),),
        resources=ResourceRequest(cpus=4, memory_gb=16.0, time_seconds=4 * 3600.0),
        scratch_dirs=("metaphlan_db",),
    )


def humann2_stage(sample: Sample) -> StageSpec:
    """Profile one sample against the shared reference index."""
    name = sample.name
    return StageSpec(
        name=f"humann2_{name}",
        branch=Branch.METAGENOMICS,
        description=f"HUMAnN2 profiling of sample {name}",
        inputs=(
            InputBinding("reads", StaticSource(sample.reads), stage_as=f"{name}.fastq.gz", concatenate=True),
            InputBinding("metaphlan_db", ArtifactRef("prepare_reference", "metaphlan_db")),
            _param("nucleotide_db"),
            _param("protein_db"),
        ),
        commands=(
            CommandTemplate(
                "humann2",
                (
                    InputOption("--input", "reads"),
                    Token("--output"),
                    Token("."),
                    Token("--output-basename"),
                    Token(name),
                    ResourceOption("--threads", "cpus"),
                    InputOption("--nucleotide-database", "nucleotide_db"),
                    InputOption("--protein-database", "protein_db"),
                    Formatted(f"--bowtie2db {{metaphlan_db}} --index {METAPHLAN_INDEX}", flag="--metaphlan-options"),
                ),
            ),
            CommandTemplate(
                "metaphlan2krona.py",
                (
                    Token("-p"),
                    Token(f"{name}_humann2_temp/{name}_metaphlan_bugs_list.tsv"),
                    Token("-k"),
                    Token(f"{name}.krona.txt"),
                ),
            ),
        ),
        outputs=(
            *(OutputSpec(table, ArtifactKind.FILE, f"{name}_{table}.tsv", publish=False) for table in HUMANN2_TABLES),
            OutputSpec("taxonomy", ArtifactKind.FILE, f"{name}.krona.txt", publish=False),
        ),
        resources=ResourceRequest(cpus=8, memory_gb=32.0, time_seconds=24 * 3600.0),
    )


def humann2_merge_stage(samples: tuple[Sample, ...]) -> StageSpec:
    """Join every per-sample table. Runs only when all samples succeeded."""
    inputs = tuple(
        InputBinding("tables", ArtifactRef(f"humann2_{sample.name}", table), stage_as="tables/")
        for sample in samples
        for table in HUMANN2_TABLES
    )
    commands = tuple(
        CommandTemplate(
            "humann2_join_tables",
            (
                InputOption("--input", "tables"),
                Token("--output"),
                Token(f"merged/{table}.tsv"),
                Token("--file_name"),
                Token(table),
            ),
        )
        for table in HUMANN2_TABLES
    )
    return StageSpec(
        name="humann2_merge",
        branch=Branch.METAGENOMICS,
        description="Join per-sample HUMAnN2 tables",
        inputs=inputs,
        commands=commands,
        outputs=(OutputSpec("archive", ArtifactKind.ZIP_ARCHIVE, "humann2_tables.zip", members=("merged",)),),
        resources=ResourceRequest(cpus=1, memory_gb=8.0, time_seconds=2 * 3600.0),
        publish_dir="metagenomics",
        collect=True,
        scratch_dirs=("merged",),
    )


def krona_stage(samples: tuple[Sample, ...]) -> StageSpec:
    """Visualize every sample's taxonomy in one Krona page."""
    return StageSpec(
        name="krona",
        branch=Branch.METAGENOMICS,
        description="Krona taxonomy visualization",
        inputs=tuple(InputBinding("taxonomy", ArtifactRef(f"humann2_{sample.name}", "taxonomy")) for sample in samples),
        commands=(
            CommandTemplate(
                "ktImportText",
                (Token("-o"), Token("taxonomy_krona.html"), Repeated("taxonomy", "{path},{name}")),
            ),
        ),
        outputs=(OutputSpec("html", ArtifactKind.FILE, "taxonomy_krona.html"),),
        resources=ResourceRequest(cpus=1, memory_gb=4.0, time_seconds=3600.0),
        publish_dir="metagenomics",
        collect=True,
    )


# ---------------------------------------------------------------------------
# Catalogue listing
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CatalogueEntry:
    name: str
    branch: Branch
    publish_dir: str | None
    description: str
    report_only: bool


def catalogue() -> tuple[CatalogueEntry, ...]:
    """Every stage the pipeline can schedule, with a placeholder sample."""
    placeholder = Sample(name="SAMPLE", reads=(Path("SAMPLE.fastq.gz"),))
    specs = (
        software_versions_stage(),
        deseq2_stage(),
        pathway_stage(),
        report_stage(),
        output_documentation_stage(),
        prepare_reference_stage(),
        humann2_stage(placeholder),
        humann2_merge_stage((placeholder,)),
        krona_stage((placeholder,)),
    )
    return tuple(
        CatalogueEntry(
            name=spec.name,
            branch=spec.branch,
            publish_dir=spec.publish_dir,
            description=spec.description,
            report_only=spec.name in REPORT_ONLY_STAGES,
        )
        for spec in specs
    )
