# tests/engine/test_materializer.py
"""Tests for command materialization and flag omission."""

from pathlib import Path

import pytest

from rnadeseq.contracts.commands import (
    CommandTemplate,
    Formatted,
    InputArg,
    InputOption,
    Repeated,
    ResourceOption,
    Switch,
    Token,
    ValueArg,
    ValueOption,
)
from rnadeseq.contracts.enums import ArtifactKind, RunMode, StageStatus
from rnadeseq.contracts.results import Artifact, ArtifactRef, StageResult
from rnadeseq.contracts.run import ResourceLimits
from rnadeseq.core.dag.models import InputBinding, ParameterSource
from rnadeseq.core.resources import ResourceRequest
from rnadeseq.engine.materializer import bind_inputs, materialize, materialize_command, resolve_binding
from rnadeseq.stages import deseq2_stage, humann2_stage, krona_stage, report_stage
from tests.fixtures.factories import make_context, make_samples, write_reads

RESOURCES = ResourceRequest(cpus=4, memory_gb=8.0, time_seconds=60.0)


class TestArguments:
    """One argument kind at a time."""

    def test_absent_input_omits_flag_and_value(self) -> None:
        template = CommandTemplate("tool", (InputOption("--genelist", "genelist"), Token("--out")))

        command = materialize_command(template, {}, {}, RESOURCES)

        assert command.argv == ("tool", "--out")

    def test_present_input_emits_flag_and_path(self) -> None:
        template = CommandTemplate("tool", (InputOption("--genelist", "genelist"),))

        command = materialize_command(template, {"genelist": (Path("/in/genes.txt"),)}, {}, RESOURCES)

        assert command.argv == ("tool", "--genelist", "/in/genes.txt")

    def test_positional_input(self) -> None:
        template = CommandTemplate("tool", (InputArg("docs"), Token("out.html")))

        assert materialize_command(template, {"docs": (Path("a.md"),)}, {}, RESOURCES).argv == ("tool", "a.md", "out.html")
        assert materialize_command(template, {}, {}, RESOURCES).argv == ("tool", "out.html")

    def test_value_formatting(self) -> None:
        template = CommandTemplate(
            "tool",
            (
                ValueOption("--logFC", "logfc"),
                ValueOption("--species", "species"),
                ValueOption("--relevel", "relevel"),
                ValueOption("--flag", "flag"),
                ValueArg("count"),
            ),
        )
        values = {"logfc": 1.0, "species": "Hsapiens", "relevel": None, "flag": True, "count": 3}

        command = materialize_command(template, {}, values, RESOURCES)

        assert command.argv == ("tool", "--logFC", "1", "--species", "Hsapiens", "--flag", "true", "3")

    def test_empty_string_value_is_omitted(self) -> None:
        template = CommandTemplate("tool", (ValueOption("--relevel", "relevel"),))

        assert materialize_command(template, {}, {"relevel": ""}, RESOURCES).argv == ("tool",)

    def test_switch(self) -> None:
        template = CommandTemplate("tool", (Switch("--batchEffect", "batch_effect"),))

        assert materialize_command(template, {}, {"batch_effect": True}, RESOURCES).argv == ("tool", "--batchEffect")
        assert materialize_command(template, {}, {"batch_effect": False}, RESOURCES).argv == ("tool",)

    def test_resources(self) -> None:
        template = CommandTemplate("tool", (ResourceOption("--threads", "cpus"), ResourceOption("--mem", "memory_gb")))

        assert materialize_command(template, {}, {}, RESOURCES).argv == ("tool", "--threads", "4", "--mem", "8")

    def test_repeated_template(self) -> None:
        template = CommandTemplate("ktImportText", (Repeated("taxonomy", "{path},{name}"),))
        bindings = {"taxonomy": (Path("/w/a.krona.txt"), Path("/w/b.krona.txt"))}

        command = materialize_command(template, bindings, {}, RESOURCES)

        assert command.argv == ("ktImportText", "/w/a.krona.txt,a", "/w/b.krona.txt,b")

    def test_formatted_needs_every_referenced_input(self) -> None:
        template = CommandTemplate("tool", (Formatted("--db {index} --x {other}", flag="--options"),))

        assert materialize_command(template, {"index": (Path("/i"),)}, {}, RESOURCES).argv == ("tool",)
        full = materialize_command(template, {"index": (Path("/i"),), "other": (Path("/o"),)}, {}, RESOURCES)
        assert full.argv == ("tool", "--options", "--db /i --x /o")

    def test_command_str_is_shell_quoted(self) -> None:
        template = CommandTemplate("tool", (Formatted("--db {index}", flag="--options"),))

        command = materialize_command(template, {"index": (Path("/i"),)}, {}, RESOURCES)

        assert str(command) == "tool --options '--db /i'"


class TestResolveBinding:
    def test_sentinel_parameter_is_absent(self, tmp_path: Path) -> None:
        context = make_context(tmp_path, mode=RunMode.NO_REPORT, supplied={"genelist": "NO_FILE"})

        assert resolve_binding(InputBinding("genelist", ParameterSource("genelist")), context.inputs, {}) is None

    def test_artifact_binding_reads_upstream_result(self, tmp_path: Path) -> None:
        context = make_context(tmp_path, mode=RunMode.NO_REPORT)
        ref = ArtifactRef("deseq2", "de_tables")
        upstream = {
            "deseq2": StageResult(
                stage="deseq2",
                status=StageStatus.SUCCEEDED,
                artifacts={"de_tables": Artifact(ref=ref, kind=ArtifactKind.FILE_SET, paths=())},
            )
        }

        paths = resolve_binding(InputBinding("de_genes", ref), context.inputs, upstream)

        assert paths == ()

    def test_missing_upstream_raises(self, tmp_path: Path) -> None:
        context = make_context(tmp_path, mode=RunMode.NO_REPORT)

        with pytest.raises(KeyError, match="No successful result for 'deseq2'"):
            resolve_binding(InputBinding("x", ArtifactRef("deseq2", "archive")), context.inputs, {})


class TestStageCommands:
    """Materialized commands of the catalogue stages."""

    def test_deseq2_omits_sentinel_inputs(self, tmp_path: Path, report_inputs: dict[str, str]) -> None:
        context = make_context(tmp_path, supplied=report_inputs, values={"logfc_threshold": 0.0, "batch_effect": False})
        stage = deseq2_stage()

        spec = materialize(stage, bind_inputs(stage, context.inputs, {}), context)

        tokens = spec.tokens
        assert tokens[0] == "DESeq2.R"
        assert "--counts" in tokens
        assert "--genelist" not in tokens
        assert "--contrasts" not in tokens
        assert "NO_FILE" not in tokens
        assert "DEFAULT" not in tokens
        assert "--batchEffect" not in tokens
        assert tokens[tokens.index("--logFCthreshold") + 1] == "0"
        assert spec.cwd == context.work_dir / "deseq2"

    def test_deseq2_with_optional_inputs(self, tmp_path: Path) -> None:
        from tests.fixtures.factories import write_report_inputs

        supplied = write_report_inputs(tmp_path / "inputs", with_optional=True)
        context = make_context(tmp_path, supplied=supplied, values={"batch_effect": True, "relevel": "condition:control"})
        stage = deseq2_stage()

        tokens = materialize(stage, bind_inputs(stage, context.inputs, {}), context).tokens

        assert tokens[tokens.index("--contrasts") + 1] == str(Path(supplied["contrasts"]).resolve())
        assert tokens[tokens.index("--genelist") + 1] == str(Path(supplied["genelist"]).resolve())
        assert tokens[tokens.index("--relevel") + 1] == "condition:control"
        assert "--batchEffect" in tokens

    def test_timeout_is_capped_time_budget(self, tmp_path: Path, report_inputs: dict[str, str]) -> None:
        limits = ResourceLimits(max_cpus=1, max_time_seconds=600.0)
        context = make_context(tmp_path, supplied=report_inputs, resources=limits)

        spec = materialize(deseq2_stage(), {}, context)

        assert spec.timeout_seconds == 600.0

    def test_humann2_uses_shared_index(self, tmp_path: Path) -> None:
        sample = make_samples(write_reads(tmp_path / "reads", ["a"]))[0]
        context = make_context(tmp_path, mode=RunMode.NO_REPORT)
        bindings = {
            "reads": (tmp_path / "work" / "humann2_a" / "a.fastq.gz",),
            "metaphlan_db": (tmp_path / "work" / "prepare_reference" / "metaphlan_db",),
        }

        spec = materialize(humann2_stage(sample), bindings, context)

        humann2, krona = spec.commands
        assert humann2.argv[:2] == ("humann2", "--input")
        options = humann2.argv[humann2.argv.index("--metaphlan-options") + 1]
        assert options == f"--bowtie2db {bindings['metaphlan_db'][0]} --index mpa_v20_m200"
        assert "--nucleotide-database" not in humann2.argv
        assert krona.argv == ("metaphlan2krona.py", "-p", "a_humann2_temp/a_metaphlan_bugs_list.tsv", "-k", "a.krona.txt")

    def test_krona_lists_every_sample(self, tmp_path: Path) -> None:
        samples = make_samples(write_reads(tmp_path / "reads", ["a", "b"]))
        context = make_context(tmp_path, mode=RunMode.NO_REPORT)
        bindings = {"taxonomy": (Path("/w/a.krona.txt"), Path("/w/b.krona.txt"))}

        spec = materialize(krona_stage(samples), bindings, context)

        assert spec.commands[0].argv == ("ktImportText", "-o", "taxonomy_krona.html", "/w/a.krona.txt,a", "/w/b.krona.txt,b")

    def test_report_without_pathway_omits_flag(self, tmp_path: Path) -> None:
        context = make_context(tmp_path, mode=RunMode.NO_REPORT)

        tokens = materialize(report_stage(with_pathway=False), {}, context).tokens

        assert "--pathway" not in tokens
        assert tokens == ("Execute_report.R", "--output", "RNAseq_report.html")
