# src/rnadeseq/engine/executor.py
"""StageExecutor: runs one stage in its private namespace.

Lifecycle of a stage:
1. Reset ``work_dir/<stage>`` and create its scratch directories
2. Stage inputs (copy, unpack or concatenate where the binding asks for it)
3. Materialize and run the commands, retrying resource kills with a
   scaled budget
4. Collect declared outputs (zip archives are packed here)
5. Publish outputs by copying them to ``outdir/<publish_dir>``

The executor never raises StageFailure; it returns a FAILED StageResult so
the orchestrator can skip the dependent subtree and carry on.
"""

from __future__ import annotations

import shutil
import zipfile
from collections.abc import Mapping
from pathlib import Path

import structlog

from rnadeseq.contracts.commands import CommandSpec
from rnadeseq.contracts.enums import ArtifactKind, StageStatus
from rnadeseq.contracts.errors import StageFailure
from rnadeseq.contracts.results import Artifact, ArtifactRef, StageResult
from rnadeseq.contracts.run import RunContext
from rnadeseq.core.dag.models import InputBinding, OutputSpec, StageSpec
from rnadeseq.core.resources import check_max
from rnadeseq.engine.clock import DEFAULT_CLOCK, Clock
from rnadeseq.engine.materializer import materialize, resolve_binding
from rnadeseq.engine.retry import MaxRetriesExceeded, RetryConfig, RetryManager, is_resource_kill
from rnadeseq.engine.runner import CommandRunner

slog = structlog.get_logger(__name__)


def _copy(source: Path, target: Path) -> None:
    if source.is_dir():
        shutil.copytree(source, target, dirs_exist_ok=True)
    else:
        shutil.copy2(source, target)


def write_archive(archive: Path, root: Path, members: tuple[str, ...]) -> None:
    """Zip ``members`` (files or directories relative to ``root``) into ``archive``.

    Directory members are stored recursively under their own name, with an
    explicit directory entry.

    Raises:
        FileNotFoundError: A member does not exist
    """
    with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for member in members:
            path = root / member
            if not path.exists():
                raise FileNotFoundError(f"archive member missing: {member}")
            if path.is_dir():
                zf.write(path, f"{member.rstrip('/')}/")
                for child in sorted(path.rglob("*")):
                    zf.write(child, child.relative_to(root).as_posix())
            else:
                zf.write(path, member)


class StageExecutor:
    """Executes stages for one run.

    Thread-safe: stages share no state beyond the read-only context, and
    each writes only inside its own namespace and publish targets.
    """

    def __init__(
        self,
        context: RunContext,
        runner: CommandRunner,
        *,
        clock: Clock | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._context = context
        self._runner = runner
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._retry = RetryManager(retry_config or RetryConfig.from_max_retries(context.resources.max_retries))

    @property
    def context(self) -> RunContext:
        return self._context

    def execute(self, stage: StageSpec, upstream: Mapping[str, StageResult]) -> StageResult:
        """Run ``stage`` to a terminal result.

        Args:
            stage: Stage to run
            upstream: Results of the stages it consumes from (all SUCCEEDED)

        Returns:
            SUCCEEDED with artifacts, or FAILED with the StageFailure
        """
        log = slog.bind(stage=stage.name)
        started = self._clock.monotonic()
        attempts = 0
        command: CommandSpec | None = None

        def attempt_once(attempt: int) -> None:
            nonlocal attempts, command
            attempts = attempt
            request = check_max(stage.resources.scaled(attempt), self._context.resources)
            command = materialize(stage, bindings, self._context, request)
            log.debug("stage_attempt", attempt=attempt, cpus=request.cpus, memory_gb=request.memory_gb)
            self._runner.run(command)

        def on_retry(attempt: int, error: BaseException) -> None:
            exit_code = error.exit_code if isinstance(error, StageFailure) else None
            log.warning("stage_retrying", attempt=attempt, exit_code=exit_code)

        try:
            namespace = self._prepare_namespace(stage)
            bindings = self._stage_inputs(stage, namespace, upstream)
            try:
                self._retry.execute_with_retry(attempt_once, is_retryable=is_resource_kill, on_retry=on_retry)
            except MaxRetriesExceeded as e:
                if isinstance(e.last_error, StageFailure):
                    raise e.last_error from None
                raise
            artifacts = self._collect_outputs(stage, namespace)
            self._publish(stage, artifacts)
        except StageFailure as failure:
            duration = self._clock.monotonic() - started
            log.error("stage_failed", cause=failure.cause, exit_code=failure.exit_code, attempts=attempts)
            return StageResult(
                stage=stage.name,
                status=StageStatus.FAILED,
                failure=failure,
                attempts=attempts,
                duration_seconds=duration,
                command=command,
            )
        except OSError as e:
            duration = self._clock.monotonic() - started
            failure = StageFailure(stage.name, f"filesystem error: {e}")
            log.error("stage_failed", cause=failure.cause, attempts=attempts)
            return StageResult(
                stage=stage.name,
                status=StageStatus.FAILED,
                failure=failure,
                attempts=attempts,
                duration_seconds=duration,
                command=command,
            )

        duration = self._clock.monotonic() - started
        log.info("stage_succeeded", attempts=attempts, duration_seconds=round(duration, 3))
        return StageResult(
            stage=stage.name,
            status=StageStatus.SUCCEEDED,
            artifacts=artifacts,
            attempts=attempts,
            duration_seconds=duration,
            command=command,
        )

    # ------------------------------------------------------------------
    # Namespace and staging
    # ------------------------------------------------------------------

    def _prepare_namespace(self, stage: StageSpec) -> Path:
        namespace = self._context.namespace(stage.name)
        if namespace.exists():
            shutil.rmtree(namespace)
        namespace.mkdir(parents=True)
        for scratch in stage.scratch_dirs:
            (namespace / scratch).mkdir(parents=True, exist_ok=True)
        return namespace

    def _stage_binding(self, stage: StageSpec, binding: InputBinding, paths: tuple[Path, ...], namespace: Path) -> tuple[Path, ...]:
        if binding.stage_as is None:
            return paths

        target = namespace / binding.stage_as
        if binding.unpack:
            target.mkdir(parents=True, exist_ok=True)
            for path in paths:
                try:
                    with zipfile.ZipFile(path) as zf:
                        zf.extractall(target)
                except zipfile.BadZipFile as e:
                    raise StageFailure(stage.name, f"input '{binding.alias}' is not a zip archive: {path}") from e
            return (target,)

        if binding.concatenate:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("ab") as out:
                for path in paths:
                    with path.open("rb") as src:
                        shutil.copyfileobj(src, out)
            return (target,)

        if binding.stage_as.endswith("/"):
            target.mkdir(parents=True, exist_ok=True)
            for path in paths:
                _copy(path, target / path.name)
            return (target,)

        if len(paths) != 1:
            raise StageFailure(stage.name, f"input '{binding.alias}' has {len(paths)} paths but stages as one file")
        target.parent.mkdir(parents=True, exist_ok=True)
        _copy(paths[0], target)
        return (target,)

    def _stage_inputs(self, stage: StageSpec, namespace: Path, upstream: Mapping[str, StageResult]) -> dict[str, tuple[Path, ...]]:
        """Alias -> paths the commands will see, after staging."""
        bound: dict[str, list[Path]] = {}
        for binding in stage.inputs:
            try:
                paths = resolve_binding(binding, self._context.inputs, upstream)
            except KeyError as e:
                raise StageFailure(stage.name, str(e.args[0])) from e
            if paths is None:
                continue
            existing = bound.setdefault(binding.alias, [])
            for path in self._stage_binding(stage, binding, paths, namespace):
                # Bindings staged into one shared directory resolve to it once
                if path not in existing:
                    existing.append(path)
        return {alias: tuple(paths) for alias, paths in bound.items()}

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    def _collect_output(self, stage: StageSpec, output: OutputSpec, namespace: Path) -> Artifact:
        ref = ArtifactRef(stage.name, output.name)

        if output.kind == ArtifactKind.FILE:
            path = namespace / output.pattern
            if not path.exists():
                raise StageFailure(stage.name, f"expected output '{output.name}' missing: {output.pattern}")
            return Artifact(ref=ref, kind=output.kind, paths=(path,))

        if output.kind == ArtifactKind.FILE_SET:
            paths = tuple(sorted(p for p in namespace.glob(output.pattern) if p.is_file()))
            if not paths and not output.optional:
                raise StageFailure(stage.name, f"expected output '{output.name}' matched no files: {output.pattern}")
            return Artifact(ref=ref, kind=output.kind, paths=paths)

        archive = namespace / output.pattern
        try:
            write_archive(archive, namespace, output.members)
        except FileNotFoundError as e:
            raise StageFailure(stage.name, f"cannot build '{output.pattern}': {e}") from e
        return Artifact(ref=ref, kind=output.kind, paths=(archive,))

    def _collect_outputs(self, stage: StageSpec, namespace: Path) -> dict[str, Artifact]:
        return {output.name: self._collect_output(stage, output, namespace) for output in stage.outputs}

    def _publish(self, stage: StageSpec, artifacts: Mapping[str, Artifact]) -> None:
        if stage.publish_dir is None:
            return
        destination = self._context.outdir / stage.publish_dir
        destination.mkdir(parents=True, exist_ok=True)
        for output in stage.outputs:
            if not output.publish:
                continue
            for path in artifacts[output.name].paths:
                _copy(path, destination / path.name)
                slog.debug("output_published", stage=stage.name, output=output.name, path=str(destination / path.name))
