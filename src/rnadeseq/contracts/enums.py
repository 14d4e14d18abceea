# src/rnadeseq/contracts/enums.py
"""Status codes, modes, and kinds used across subsystem boundaries."""

from enum import StrEnum


class RunMode(StrEnum):
    """Operating mode of a run.

    REPORT is the stricter mode: every report input must resolve to a real
    path. NO_REPORT (``--NoReportNeeded``) relaxes all of them to optional.
    """

    REPORT = "report"
    NO_REPORT = "no_report"


class RunStatus(StrEnum):
    """Terminal status of a whole run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StageStatus(StrEnum):
    """Lifecycle of a single stage.

    SKIPPED means the stage became unreachable because an upstream stage
    failed or was itself skipped. It never ran.
    """

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StageStatus.SUCCEEDED, StageStatus.FAILED, StageStatus.SKIPPED)


class ArtifactKind(StrEnum):
    """Shape of a declared stage output."""

    FILE = "file"
    FILE_SET = "file_set"
    ZIP_ARCHIVE = "zip_archive"


class ParameterKind(StrEnum):
    """What a file parameter must point at when supplied."""

    FILE = "file"
    DIRECTORY = "directory"


class Branch(StrEnum):
    """Independent sub-graphs of the pipeline.

    Branches share no outputs, so a failure in one never blocks another.
    """

    RNASEQ = "rnaseq"
    REPORT = "report"
    METAGENOMICS = "metagenomics"
