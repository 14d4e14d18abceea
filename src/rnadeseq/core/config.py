# src/rnadeseq/core/config.py
"""
Configuration schema and loading for rnadeseq runs.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.

Precedence, highest first:
1. Command-line overrides
2. Environment variables (RNADESEQ_*, ``__`` for nesting)
3. Params file (YAML)
4. Defaults from the Pydantic schema
"""

import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from rnadeseq.contracts.enums import RunMode
from rnadeseq.contracts.run import ResourceLimits
from rnadeseq.core.resources import parse_duration_seconds, parse_memory_gb

_RUN_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class InputSettings(BaseModel):
    """File inputs of the differential expression and report branches.

    Every value is a path, a sentinel literal (``NO_FILE``, ``DEFAULT``) or
    unset. Which ones are required depends on the run mode and is decided by
    the input resolver, not here.
    """

    model_config = {"frozen": True}

    rawcounts: str | None = Field(default=None, description="Raw count table (TSV; gene ID and name, then one column per sample)")
    metadata: str | None = Field(default=None, description="Sample metadata table (TSV)")
    model: str | None = Field(default=None, description="Linear model specification (text)")
    contrasts: str | None = Field(default=None, description="Contrast table (TSV) or DEFAULT")
    genelist: str | None = Field(default=None, description="Genes of interest, one per line, or NO_FILE")
    kegg_blacklist: str | None = Field(default=None, description="KEGG pathways to exclude, or NO_FILE")
    project_summary: str | None = Field(default=None, description="Project summary for the report")
    versions: str | None = Field(default=None, description="Software versions table of the upstream analysis")
    report_options: str | None = Field(default=None, description="Report options (YAML)")
    multiqc: str | None = Field(default=None, description="Quality-control archive (MultiQC zip)")
    report_template: str | None = Field(default=None, description="Report template archive (zip)")
    quote: str | None = Field(default=None, description="Signed offer/quote document")


class MetagenomicsSettings(BaseModel):
    """Inputs of the HUMAnN2 metagenomic profiling branch."""

    model_config = {"frozen": True}

    reads: str | None = Field(
        default=None,
        description="Read glob; paired-end patterns use a brace group, e.g. 'data/*_R{1,2}.fastq.gz'",
    )
    single_end: bool = Field(default=False, description="Treat every matched read file as its own sample")
    nucleotide_db: str | None = Field(default=None, description="HUMAnN2 nucleotide database directory (ChocoPhlAn)")
    protein_db: str | None = Field(default=None, description="HUMAnN2 protein database directory (UniRef)")
    taxonomic_db: str | None = Field(default=None, description="MetaPhlAn2 marker sequences (FASTA) to index")


class AnalysisSettings(BaseModel):
    """Scalar options passed through to the analysis tools."""

    model_config = {"frozen": True}

    species: str | None = Field(default=None, description="Species name, e.g. Hsapiens or Mmusculus")
    logfc_threshold: float = Field(default=0.0, ge=0, description="Log2 fold-change threshold for DESeq2")
    relevel: str | None = Field(default=None, description="Reference level(s) for factors, e.g. 'condition:control'")
    batch_effect: bool = Field(default=False, description="Account for batch effects in DESeq2")
    min_deg_pathway: int = Field(default=1, ge=1, description="Minimum DE genes for a pathway to be plotted")


class ResourceSettings(BaseModel):
    """Per-run resource budget."""

    model_config = {"frozen": True}

    max_workers: int = Field(default=4, gt=0, description="Maximum stages running concurrently")
    max_cpus: int = Field(default=16, gt=0, description="Cap on any stage's CPU request")
    max_memory: str = Field(default="128.GB", description="Cap on any stage's memory request")
    max_time: str = Field(default="240.h", description="Cap on any stage's wall-clock time")
    max_retries: int = Field(default=1, ge=0, description="Retries for stages killed for resources")

    @field_validator("max_memory")
    @classmethod
    def validate_memory(cls, v: str) -> str:
        parse_memory_gb(v)
        return v

    @field_validator("max_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        parse_duration_seconds(v)
        return v

    def to_limits(self) -> ResourceLimits:
        return ResourceLimits(
            max_workers=self.max_workers,
            max_cpus=self.max_cpus,
            max_memory_gb=parse_memory_gb(self.max_memory),
            max_time_seconds=parse_duration_seconds(self.max_time),
            max_retries=self.max_retries,
        )


class NotificationSettings(BaseModel):
    """End-of-run email notification.

    Example YAML:
        notification:
          email: someone@example.org
          smtp_host: smtp.example.org
          smtp_port: 587
          use_tls: true
    """

    model_config = {"frozen": True}

    email: str | None = Field(default=None, description="Recipient of the completion summary")
    plaintext_email: bool = Field(default=False, description="Send plain-text email only")
    max_attachment_size: str = Field(default="25.MB", description="Largest report archive attached to the email")
    sender: str = Field(default="rnadeseq@localhost", description="From address")
    smtp_host: str = Field(default="localhost")
    smtp_port: int = Field(default=25, gt=0)
    smtp_user: str | None = Field(default=None)
    smtp_password: str | None = Field(default=None)
    use_tls: bool = Field(default=False)
    timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("max_attachment_size")
    @classmethod
    def validate_attachment_size(cls, v: str) -> str:
        parse_memory_gb(v)
        return v

    @property
    def max_attachment_bytes(self) -> int:
        return int(parse_memory_gb(self.max_attachment_size) * 1024**3)

    @model_validator(mode="after")
    def validate_credentials_pair(self) -> "NotificationSettings":
        if (self.smtp_user is None) != (self.smtp_password is None):
            raise ValueError("smtp_user and smtp_password must be set together")
        return self


class PipelineSettings(BaseModel):
    """Top-level run configuration.

    This is the single source of truth for a run. All settings are
    validated and frozen after construction.
    """

    model_config = {"frozen": True}

    name: str | None = Field(default=None, description="Custom run name")
    no_report_needed: bool = Field(default=False, description="Relax all report inputs to optional (--NoReportNeeded)")
    outdir: Path = Field(default=Path("results"), description="Root of published outputs")
    work_dir: Path = Field(default=Path("work"), description="Root of per-stage working namespaces")
    profile: str = Field(default="standard", description="Config profile label echoed in the run summary")
    container: str | None = Field(default=None, description="Container image label echoed in the run summary")

    inputs: InputSettings = Field(default_factory=InputSettings)
    metagenomics: MetagenomicsSettings = Field(default_factory=MetagenomicsSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    resources: ResourceSettings = Field(default_factory=ResourceSettings)
    notification: NotificationSettings = Field(default_factory=NotificationSettings)

    @property
    def mode(self) -> RunMode:
        return RunMode.NO_REPORT if self.no_report_needed else RunMode.REPORT

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        if v is not None and not _RUN_NAME_PATTERN.match(v):
            raise ValueError(f"run name {v!r} may only contain letters, digits, '.', '_' and '-'")
        return v


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values."""

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            default = match.group(2)
            if default is not None:
                return default
            # No env var and no default - keep original
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lowercase_keys(value: Any) -> Any:
    """Dynaconf uppercases keys from env vars; Pydantic fields are lowercase."""
    if isinstance(value, dict):
        return {str(k).lower(): _lowercase_keys(v) for k, v in value.items()}
    return value


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Merge ``overrides`` into a copy of ``base``; None values never override."""
    merged = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        elif isinstance(value, dict):
            merged[key] = _deep_merge({}, value)
        else:
            merged[key] = value
    return merged


def load_settings(
    params_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> PipelineSettings:
    """Load settings from an optional YAML params file, env vars and overrides.

    Environment variable format: RNADESEQ_RESOURCES__MAX_CPUS=8 for nested keys.

    Args:
        params_path: Path to a YAML params file (optional)
        overrides: Nested dict of command-line values; None entries are ignored

    Returns:
        Validated PipelineSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If the params file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if params_path is not None and not params_path.exists():
        raise FileNotFoundError(f"Params file not found: {params_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="RNADESEQ",
        settings_files=[str(params_path)] if params_path is not None else [],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k: v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _lowercase_keys(raw_config)
    raw_config = _expand_env_vars(raw_config)
    raw_config = _deep_merge(raw_config, overrides or {})

    return PipelineSettings(**raw_config)


def resolve_config(settings: PipelineSettings) -> dict[str, Any]:
    """Settings as a JSON-compatible dict with the SMTP password masked."""
    config_dict = settings.model_dump(mode="json")
    if config_dict["notification"]["smtp_password"] is not None:
        config_dict["notification"]["smtp_password"] = "***"
    return config_dict
