# tests/reporting/test_summary.py
"""Tests for the run summary and its rendered forms."""

from datetime import datetime
from pathlib import Path

import pytest

from rnadeseq.contracts.enums import RunMode, RunStatus, StageStatus
from rnadeseq.contracts.errors import StageFailure
from rnadeseq.contracts.results import StageResult
from rnadeseq.contracts.run import ResourceLimits
from rnadeseq.engine.orchestrator import RunResult
from rnadeseq.reporting.summary import SkipEntry, build_run_summary, format_duration
from rnadeseq.reporting.templates import render_html, render_text
from tests.fixtures.factories import STARTED_AT, make_context, make_samples, write_reads

COMPLETED_AT = datetime(2024, 3, 1, 10, 32, 5)


def _succeeded(stage: str) -> StageResult:
    return StageResult(stage=stage, status=StageStatus.SUCCEEDED, attempts=1)


def _failed(stage: str, exit_code: int | None, stderr_tail: str = "") -> StageResult:
    return StageResult(
        stage=stage,
        status=StageStatus.FAILED,
        failure=StageFailure(stage, f"tool exited with status {exit_code}", exit_code=exit_code, stderr_tail=stderr_tail),
        attempts=1,
    )


def _run(*results: StageResult, status: RunStatus) -> RunResult:
    return RunResult(
        run_name="test_run",
        status=status,
        results={r.stage: r for r in results},
        duration_seconds=3725.0,
    )


class TestFormatDuration:
    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(0.0, "0s"), (59.4, "59s"), (60.0, "1m 0s"), (3725.0, "1h 2m 5s"), (86400.0, "24h 0m 0s")],
    )
    def test_formats(self, seconds: float, expected: str) -> None:
        assert format_duration(seconds) == expected


class TestBuildRunSummary:
    def test_fields_in_order(self, tmp_path: Path) -> None:
        context = make_context(
            tmp_path,
            mode=RunMode.NO_REPORT,
            values={"species": "Mmusculus", "logfc_threshold": 1.0, "relevel": None},
            resources=ResourceLimits(max_workers=2, max_cpus=8, max_memory_gb=64.0, max_time_seconds=48 * 3600.0),
        )

        summary = build_run_summary(context, email="someone@example.org", command_line="rnadeseq run --NoReportNeeded")

        fields = summary.fields
        keys = list(fields)
        assert keys[:3] == ["Run Name", "Pipeline Version", "Mode"]
        assert keys[-1] == "Started"
        assert fields["Mode"] == "no report (--NoReportNeeded)"
        assert fields["Contrasts"] == "DEFAULT"
        assert fields["Genes of interest"] == "NO_FILE"
        assert fields["Nucleotide database"] == "-"
        assert fields["Species"] == "Mmusculus"
        assert fields["logFC threshold"] == "1.0"
        assert "Relevel" not in fields
        assert fields["Max Resources"] == "64 GB memory, 8 cpus, 48 h"
        assert fields["Max Workers"] == "2"
        assert fields["User"] == "tester"
        assert fields["E-mail Address"] == "someone@example.org"
        assert fields["Command Line"] == "rnadeseq run --NoReportNeeded"
        assert fields["Started"] == "2024-03-01 09:30:00"
        assert "Container" not in fields

    def test_samples_are_listed(self, tmp_path: Path, databases: dict[str, str]) -> None:
        samples = make_samples(write_reads(tmp_path / "reads", ["s1", "s2"], paired=False), single_end=True)
        context = make_context(tmp_path, mode=RunMode.NO_REPORT, supplied=databases, samples=samples)

        summary = build_run_summary(context)

        assert summary.fields["Samples"] == "2 (single-end): s1, s2"

    def test_starts_unfinalized(self, tmp_path: Path) -> None:
        summary = build_run_summary(make_context(tmp_path, mode=RunMode.NO_REPORT))

        assert not summary.is_final
        assert summary.success is None
        assert summary.duration == "-"
        assert summary.started_at == STARTED_AT


class TestFinalize:
    def test_success(self, tmp_path: Path) -> None:
        summary = build_run_summary(make_context(tmp_path, mode=RunMode.NO_REPORT))

        final = summary.finalize(_run(_succeeded("deseq2"), status=RunStatus.COMPLETED), COMPLETED_AT)

        assert final.is_final
        assert final.success is True
        assert final.exit_status == 0
        assert final.duration == "1h 2m 5s"
        assert final.stage_statuses == {"deseq2": StageStatus.SUCCEEDED}
        assert not summary.is_final

    def test_failure_records_first_exit_status_and_skips(self, tmp_path: Path) -> None:
        summary = build_run_summary(make_context(tmp_path, mode=RunMode.NO_REPORT))
        result = _run(
            _succeeded("humann2_a"),
            _failed("humann2_b", 1, "humann2: database missing"),
            StageResult.skipped("humann2_merge", ("humann2_b",)),
            status=RunStatus.FAILED,
        )

        final = summary.finalize(result, COMPLETED_AT)

        assert final.success is False
        assert final.exit_status == 1
        assert [f.stage for f in final.failures] == ["humann2_b"]
        assert final.skipped == (SkipEntry("humann2_merge", ("humann2_b",)),)
        assert final.error_report == "humann2_b: tool exited with status 1\nhumann2: database missing"

    def test_failure_without_exit_code_defaults_to_one(self, tmp_path: Path) -> None:
        summary = build_run_summary(make_context(tmp_path, mode=RunMode.NO_REPORT))

        final = summary.finalize(_run(_failed("deseq2", None), status=RunStatus.FAILED), COMPLETED_AT)

        assert final.exit_status == 1

    def test_finalize_twice_raises(self, tmp_path: Path) -> None:
        summary = build_run_summary(make_context(tmp_path, mode=RunMode.NO_REPORT))
        final = summary.finalize(_run(status=RunStatus.COMPLETED), COMPLETED_AT)

        with pytest.raises(ValueError, match="already finalized"):
            final.finalize(_run(status=RunStatus.COMPLETED))

    def test_to_dict(self, tmp_path: Path) -> None:
        summary = build_run_summary(make_context(tmp_path, mode=RunMode.NO_REPORT))
        result = _run(_failed("deseq2", 137), StageResult.skipped("pathway", ("deseq2",)), status=RunStatus.FAILED)

        data = summary.finalize(result, COMPLETED_AT).to_dict()

        assert data["completed_at"] == "2024-03-01T10:32:05"
        assert data["exit_status"] == 137
        assert data["skipped"] == [{"stage": "pathway", "blocked_by": ["deseq2"]}]
        assert data["stages"] == {"deseq2": "failed", "pathway": "skipped"}


class TestRender:
    def test_unfinalized_summary_is_refused(self, tmp_path: Path) -> None:
        summary = build_run_summary(make_context(tmp_path, mode=RunMode.NO_REPORT))

        with pytest.raises(ValueError, match="finalized"):
            render_text(summary)

    def test_text_success(self, tmp_path: Path) -> None:
        summary = build_run_summary(make_context(tmp_path, mode=RunMode.NO_REPORT))
        final = summary.finalize(_run(_succeeded("deseq2"), status=RunStatus.COMPLETED), COMPLETED_AT)

        text = render_text(final)

        assert "Run Name: test_run" in text
        assert "completed successfully" in text
        assert "unsuccessfully" not in text
        assert "The workflow was completed at 2024-03-01 10:32:05 (duration: 1h 2m 5s)" in text
        assert " - User: tester" in text

    def test_text_failure_lists_causes_and_skips(self, tmp_path: Path) -> None:
        summary = build_run_summary(make_context(tmp_path, mode=RunMode.NO_REPORT))
        result = _run(
            _failed("humann2_b", 1, "humann2: database missing"),
            StageResult.skipped("krona", ("humann2_b",)),
            status=RunStatus.FAILED,
        )

        text = render_text(summary.finalize(result, COMPLETED_AT))

        assert "completed unsuccessfully" in text
        assert "was: 1." in text
        assert "Stage 'humann2_b' failed: tool exited with status 1" in text
        assert "humann2: database missing" in text
        assert "  - krona (blocked by humann2_b)" in text

    def test_html_escapes_values(self, tmp_path: Path) -> None:
        summary = build_run_summary(make_context(tmp_path, mode=RunMode.NO_REPORT), command_line="rnadeseq run --name '<b>'")
        result = _run(_failed("deseq2", 1, "Error in <module>: x & y"), status=RunStatus.FAILED)

        html = render_html(summary.finalize(result, COMPLETED_AT))

        assert "&lt;module&gt;: x &amp; y" in html
        assert "<b>" not in html
        assert "<code>deseq2</code>: failed" in html
