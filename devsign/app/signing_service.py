"""Sign a batch of artifacts with the key found in a key directory."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from devsign.app.adapters.pty_channel import PtyChannel, answer_prompts
from devsign.app.key_metadata import KeyMetadataCache, KeyMetadataError
from devsign.app.ports import AgentPort, ArtifactInspectorPort, ChannelPort, LedgerPort
from devsign.app.ports.artifact import ResignCommandPort
from devsign.utils.commands import CommandNotFoundError
from devsign.utils.hashing import compute_sha256_file
from devsign.utils.paths import find_artifacts

logger = logging.getLogger(__name__)

ChannelFactory = Callable[[Sequence[str]], ChannelPort]
AgentFactory = Callable[[Path], AgentPort]


class SigningError(RuntimeError):
    """Raised when a single artifact could not be signed."""


class JobOutcome(str, Enum):
    SIGNED = "signed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SigningJob:
    """One candidate artifact to sign."""

    artifact: Path
    key_dir: Path
    force: bool = False


@dataclass(slots=True)
class SigningResult:
    artifact: Path
    outcome: JobOutcome
    error: str | None = None
    prompts_answered: int = 0


@dataclass
class BatchSignResult:
    """Result of a batch signing run."""

    key_dir: Path
    duration_seconds: float = 0.0
    results: list[SigningResult] = field(default_factory=list)

    def _with(self, outcome: JobOutcome) -> list[Path]:
        return [result.artifact for result in self.results if result.outcome is outcome]

    @property
    def signed(self) -> list[Path]:
        return self._with(JobOutcome.SIGNED)

    @property
    def skipped(self) -> list[Path]:
        return self._with(JobOutcome.SKIPPED)

    @property
    def failed(self) -> list[Path]:
        return self._with(JobOutcome.FAILED)

    @property
    def total(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key_dir": str(self.key_dir),
            "total": self.total,
            "signed": [str(path) for path in self.signed],
            "skipped": [str(path) for path in self.skipped],
            "failed": [
                {"artifact": str(result.artifact), "error": result.error}
                for result in self.results
                if result.outcome is JobOutcome.FAILED
            ],
            "duration_seconds": self.duration_seconds,
        }


class SigningService:
    """Discover, filter and sign artifacts under bounded concurrency.

    Individual signing failures are recorded and never abort the batch. Only
    missing tools and undeterminable key metadata are fatal.
    """

    def __init__(
        self,
        *,
        inspector: ArtifactInspectorPort,
        resign_command: ResignCommandPort,
        metadata_cache: KeyMetadataCache,
        agent_factory: AgentFactory,
        channel_factory: ChannelFactory = PtyChannel,
        ledger_port: LedgerPort | None = None,
        extension: str = ".rpm",
    ) -> None:
        self.inspector = inspector
        self.resign_command = resign_command
        self.metadata_cache = metadata_cache
        self._agent_factory = agent_factory
        self._channel_factory = channel_factory
        self._ledger = ledger_port
        self.extension = extension

    def discover(self, artifact_glob: str | Path) -> list[Path]:
        """Return readable artifacts under every directory matching ``artifact_glob``."""
        return find_artifacts(artifact_glob, self.extension)

    def sign_all(
        self,
        artifact_glob: str | Path,
        key_dir: Path,
        *,
        force: bool = False,
        max_concurrent: int = 1,
        show_progress: bool = False,
        progress_title: str = "sign",
    ) -> BatchSignResult:
        """Sign every artifact found under ``artifact_glob`` with the key in ``key_dir``.

        Args:
            artifact_glob: Directory, file or glob of directories to search
            key_dir: Key directory (gpg homedir)
            force: Re-sign artifacts that already carry a signature
            max_concurrent: Maximum number of concurrent signing jobs
            show_progress: Render a tqdm progress bar
            progress_title: Progress bar description

        Returns:
            Per-artifact outcomes

        Raises:
            CommandNotFoundError: If gpg or rpmsign are missing
            KeyMetadataError: If the signing key metadata cannot be determined
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        key_dir = Path(key_dir).resolve()
        jobs = [
            SigningJob(artifact=artifact, key_dir=key_dir, force=force)
            for artifact in self.discover(artifact_glob)
        ]
        batch = BatchSignResult(key_dir=key_dir)
        started = time.monotonic()

        try:
            if jobs:
                batch.results = self._run_jobs(jobs, max_concurrent, show_progress, progress_title)
        finally:
            self.stop_agent(key_dir)
            batch.duration_seconds = time.monotonic() - started

        self._log(batch, force=force, max_concurrent=max_concurrent)
        return batch

    def sign_one(self, artifact: Path, key_dir: Path) -> int:
        """Re-sign ``artifact`` in place, answering passphrase prompts.

        Returns:
            Number of passphrase prompts answered

        Raises:
            SigningError: If the resign process exits non-zero
        """
        metadata = self.metadata_cache.load(key_dir)
        argv = self.resign_command.build(artifact, identity=metadata.name, key_dir=metadata.directory)
        logger.debug("Signing %s with %s from %s", artifact, metadata.name, metadata.directory)

        channel = self._channel_factory(argv)
        try:
            secret = metadata.passphrase.get_secret_value().encode("utf-8")
            answered = answer_prompts(channel, secret)
        finally:
            # The child is reaped even when the prompt exchange fails.
            channel.close()
            status = channel.wait()

        if status != 0:
            raise SigningError(f"Failure running {' '.join(argv)} (exit status {status})")
        return answered

    def stop_agent(self, key_dir: Path) -> None:
        """Tear down any agent the resign tool stood up for ``key_dir``."""
        try:
            if not self.resign_command.starts_agent():
                return
            port = self._agent_factory(key_dir)
            port.stop(port.info())
        except Exception as exc:  # noqa: BLE001 - teardown must not mask batch results
            logger.warning("Failed to stop gpg-agent for %s: %s", key_dir, exc)

    def _run_jobs(
        self,
        jobs: list[SigningJob],
        max_concurrent: int,
        show_progress: bool,
        progress_title: str,
    ) -> list[SigningResult]:
        results: list[SigningResult] = []

        with ThreadPoolExecutor(max_workers=max_concurrent) as executor:
            aborted = threading.Event()
            futures = [executor.submit(self._run_job, job, aborted) for job in jobs]
            completed = as_completed(futures)
            if show_progress:
                from tqdm import tqdm  # type: ignore[import-untyped]

                completed = tqdm(completed, total=len(futures), desc=progress_title)

            try:
                for future in completed:
                    results.append(future.result())
            except BaseException:
                # Queued jobs must not start once the batch is aborted.
                executor.shutdown(wait=True, cancel_futures=True)
                raise

        results.sort(key=lambda result: str(result.artifact))
        return results

    def _run_job(self, job: SigningJob, aborted: threading.Event) -> SigningResult:
        if aborted.is_set():
            return SigningResult(artifact=job.artifact, outcome=JobOutcome.FAILED, error="batch aborted")

        try:
            if not job.force and self.inspector.is_signed(job.artifact):
                logger.debug("Skipping signed package %s", job.artifact)
                return SigningResult(artifact=job.artifact, outcome=JobOutcome.SKIPPED)

            answered = self.sign_one(job.artifact, job.key_dir)
        except (KeyMetadataError, CommandNotFoundError):
            aborted.set()
            raise
        except Exception as exc:  # noqa: BLE001 - one artifact must not stop the batch
            logger.warning(
                "Error occurred while attempting to sign %s, skipping: %s", job.artifact, exc
            )
            return SigningResult(artifact=job.artifact, outcome=JobOutcome.FAILED, error=str(exc))

        logger.info("Signed %s", job.artifact)
        return SigningResult(
            artifact=job.artifact,
            outcome=JobOutcome.SIGNED,
            prompts_answered=answered,
        )

    def _log(self, batch: BatchSignResult, **args: Any) -> None:
        if self._ledger is None:
            return
        if batch.key_dir in self.metadata_cache:
            args["key_id"] = self.metadata_cache.load(batch.key_dir).key_id
        try:
            self._ledger.log(
                operation="sign_batch",
                inputs=[str(result.artifact) for result in batch.results],
                outputs=[compute_sha256_file(path) for path in batch.signed],
                args={
                    "key_dir": str(batch.key_dir),
                    "signed": len(batch.signed),
                    "skipped": len(batch.skipped),
                    "failed": len(batch.failed),
                    **args,
                },
            )
        except Exception as exc:  # noqa: BLE001 - audit failures must not block signing
            logger.warning("Failed to record sign_batch in audit ledger: %s", exc)
