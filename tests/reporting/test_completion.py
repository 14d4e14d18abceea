# tests/reporting/test_completion.py
"""Tests for CompletionReporter: report files and best-effort notification."""

from datetime import datetime
from email.message import EmailMessage
from pathlib import Path

import pytest

from rnadeseq.contracts.enums import RunMode, RunStatus, StageStatus
from rnadeseq.contracts.errors import StageFailure
from rnadeseq.contracts.results import StageResult
from rnadeseq.core.config import NotificationSettings
from rnadeseq.engine.orchestrator import RunResult
from rnadeseq.reporting.completion import CompletionReporter
from rnadeseq.reporting.notify import EmailNotifier
from rnadeseq.reporting.summary import build_run_summary
from tests.fixtures.factories import make_context

COMPLETED_AT = datetime(2024, 3, 1, 11, 0, 0)


class BrokenTransport:
    def send(self, message: EmailMessage) -> None:
        raise OSError("connection reset")


class RecordingTransport:
    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        self.sent.append(message)


def _failed_run() -> RunResult:
    failure = StageFailure("deseq2", "DESeq2.R exited with status 1", exit_code=1)
    return RunResult(
        run_name="test_run",
        status=RunStatus.FAILED,
        results={
            "deseq2": StageResult(stage="deseq2", status=StageStatus.FAILED, failure=failure, attempts=1),
            "pathway": StageResult.skipped("pathway", ("deseq2",)),
        },
    )


class TestCompletionReporter:
    def test_writes_both_reports(self, tmp_path: Path) -> None:
        context = make_context(tmp_path, mode=RunMode.NO_REPORT)
        summary = build_run_summary(context)

        outcome = CompletionReporter(context).complete(summary, _failed_run(), completed_at=COMPLETED_AT)

        assert outcome.html_path == context.outdir / "pipeline_info" / "pipeline_report.html"
        assert outcome.text_path == context.outdir / "pipeline_info" / "pipeline_report.txt"
        assert "completed unsuccessfully" in outcome.text_path.read_text()
        assert "<code>pathway</code>: skipped" in outcome.html_path.read_text()
        assert outcome.summary.success is False
        assert outcome.summary.exit_status == 1
        assert not outcome.notification.delivered

    def test_notification_failure_is_a_warning(self, tmp_path: Path) -> None:
        context = make_context(tmp_path, mode=RunMode.NO_REPORT)
        notifier = EmailNotifier(NotificationSettings(email="someone@example.org"), BrokenTransport())
        success = RunResult(run_name="test_run", status=RunStatus.COMPLETED)

        outcome = CompletionReporter(context, notifier=notifier).complete(
            build_run_summary(context), success, completed_at=COMPLETED_AT
        )

        assert outcome.summary.success is True
        assert not outcome.notification.delivered
        assert len(outcome.notification.failures) == 2
        assert outcome.html_path.is_file()

    def test_published_report_archive_is_attached(self, tmp_path: Path) -> None:
        context = make_context(tmp_path, mode=RunMode.NO_REPORT)
        archive = context.outdir / "report" / "report.zip"
        archive.parent.mkdir(parents=True)
        archive.write_bytes(b"PK\x05\x06" + b"\0" * 18)
        transport = RecordingTransport()
        reporter = CompletionReporter(context, notifier=EmailNotifier(NotificationSettings(email="a@b.org"), transport))

        reporter.complete(build_run_summary(context), RunResult(run_name="test_run", status=RunStatus.COMPLETED))

        assert reporter.report_archive() == archive
        assert [a.get_filename() for a in transport.sent[0].iter_attachments()] == ["report.zip"]

    def test_report_write_error_propagates(self, tmp_path: Path) -> None:
        context = make_context(tmp_path, mode=RunMode.NO_REPORT)
        context.outdir.mkdir(parents=True)
        (context.outdir / "pipeline_info").write_text("a file where a directory should be")

        with pytest.raises(OSError):
            CompletionReporter(context).complete(build_run_summary(context), _failed_run())

    def test_summary_cannot_be_completed_twice(self, tmp_path: Path) -> None:
        context = make_context(tmp_path, mode=RunMode.NO_REPORT)
        reporter = CompletionReporter(context)
        first = reporter.complete(build_run_summary(context), _failed_run())

        with pytest.raises(ValueError, match="already finalized"):
            reporter.complete(first.summary, _failed_run())
