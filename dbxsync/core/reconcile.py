"""Reconciliation of fixed files and dated document folders.

One tick compares modification times of every tracked source with its
destination, copies when the source is newer, and removes the source once the
destination has caught up. Every decision is re-derived from remote state, so
an interrupted tick is simply repeated by the next one.
"""

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime

from ..models.config import MirrorConfig
from .auth import DropboxAuthError
from .operations import SyncOperations
from .paths import archive_paths, has_suffix, join_path, year_prefix

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Result of reconciling one file or dated folder."""

    success: bool
    path: str
    operation: str  # "file" or "folder"
    message: str
    transferred: int = 0
    deleted: bool = False
    skipped: bool = False


@dataclass
class TickReport:
    """Results of one reconciliation tick."""

    results: list[SyncResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def transferred(self) -> int:
        return sum(r.transferred for r in self.results)

    @property
    def deleted(self) -> int:
        return sum(1 for r in self.results if r.deleted)

    @property
    def failed(self) -> list[SyncResult]:
        return [r for r in self.results if not r.success]


def needs_transfer(source_mod: datetime | None, target_mod: datetime | None) -> bool:
    """Copy only an existing source that is strictly newer than its target."""
    if source_mod is None:
        return False
    return target_mod is None or source_mod > target_mod


def caught_up(source_mod: datetime, target_mod: datetime | None) -> bool:
    """True if the target is at least as new as the source."""
    return target_mod is not None and target_mod >= source_mod


class Reconciler:
    """Runs the copy-if-newer, delete-when-caught-up policy."""

    def __init__(
        self,
        config: MirrorConfig,
        operations: SyncOperations | None = None,
        dry_run: bool = False,
    ) -> None:
        """Initialize the reconciler.

        Args:
            config: Mirror configuration
            operations: SyncOperations (created if not provided)
            dry_run: Decide and report, but never upload or delete
        """
        self.config = config
        self.operations = operations or SyncOperations()
        self.dry_run = dry_run

    # =========================================================================
    # Fixed Files
    # =========================================================================

    def sync_fixed_file(self, name: str) -> SyncResult:
        """Copy one configured file if newer, then delete its source."""
        files = self.config.files
        if files is None:
            raise ValueError("No fixed files configured")

        ops = self.operations
        source = join_path(files.source_folder, name)
        target = join_path(files.target_folder, name)

        source_mod = ops.get_mod_time(source)
        target_mod = ops.get_mod_time(target)

        if source_mod is None:
            logger.info("Skipping %s: source not found", source)
            return SyncResult(True, source, "file", "Source not found", skipped=True)

        transferred = 0
        if needs_transfer(source_mod, target_mod):
            if self.dry_run:
                return SyncResult(
                    True, source, "file", f"Would copy to {target} and delete source", skipped=True
                )
            if not ops.stream_file(source, target):
                return SyncResult(False, source, "file", f"Copy to {target} failed, source kept")
            transferred = 1
            # A completed copy counts as caught up with the source
            target_mod = max(target_mod or source_mod, source_mod)
        else:
            logger.info(
                "Skipping copy of %s: target modified %s, source %s",
                source, target_mod, source_mod,
            )

        if not caught_up(source_mod, target_mod):
            logger.info("Keeping %s: %s is older than the source", source, target)
            return SyncResult(True, source, "file", "Target behind source, source kept", transferred)

        if self.dry_run:
            return SyncResult(True, source, "file", "Would delete source", skipped=True)

        if not ops.delete_path(source):
            return SyncResult(False, source, "file", "Failed to delete source", transferred)

        message = f"Copied to {target}, source deleted" if transferred else "Target up to date, source deleted"
        return SyncResult(True, source, "file", message, transferred, deleted=True)

    # =========================================================================
    # Dated Document Folders
    # =========================================================================

    def sync_dated_folder(self, name: str) -> SyncResult:
        """Archive the documents of one dated folder, then delete the folder.

        The archive year folder and archive subfolder must already exist. The
        source folder is deleted only if it held at least one document and
        every document was copied or found up to date.
        """
        documents_config = self.config.documents
        if documents_config is None:
            raise ValueError("No document folders configured")

        ops = self.operations
        folder = join_path(documents_config.source_root, name)

        paths = archive_paths(documents_config.archive_root, name)
        if paths is None:
            return SyncResult(True, folder, "folder", "Not a dated folder", skipped=True)
        year_folder, archive_folder = paths

        if not ops.folder_exists(year_folder) or not ops.folder_exists(archive_folder):
            logger.info("Skipping %s: archive folder %s does not exist", folder, archive_folder)
            return SyncResult(True, folder, "folder", f"No archive folder {archive_folder}", skipped=True)

        documents = [
            entry
            for entry in ops.list_entries(folder)
            if entry.is_file and has_suffix(entry.name, documents_config.suffix)
        ]
        if not documents:
            logger.info("Skipping %s: no %s documents", folder, documents_config.suffix)
            return SyncResult(True, folder, "folder", "No documents", skipped=True)

        transferred = 0
        pending = 0
        failed: list[str] = []

        for document in documents:
            source = join_path(folder, document.name)
            target = join_path(archive_folder, document.name)

            source_mod = ops.get_mod_time(source)
            target_mod = ops.get_mod_time(target)

            if source_mod is None:
                logger.error("Cannot archive %s: source metadata unavailable", source)
                failed.append(document.name)
            elif not needs_transfer(source_mod, target_mod):
                logger.debug("Already archived: %s", source)
            elif self.dry_run:
                pending += 1
            elif ops.stream_file(source, target):
                transferred += 1
            else:
                failed.append(document.name)

        if failed:
            logger.info("Keeping %s: %d of %d documents not archived", folder, len(failed), len(documents))
            return SyncResult(
                False,
                folder,
                "folder",
                f"Not archived: {', '.join(failed)}; folder kept",
                transferred,
            )

        if self.dry_run:
            return SyncResult(
                True,
                folder,
                "folder",
                f"Would archive {pending} of {len(documents)} documents and delete folder",
                skipped=True,
            )

        if not ops.delete_path(folder):
            return SyncResult(False, folder, "folder", "Archived, but failed to delete folder", transferred)

        return SyncResult(
            True,
            folder,
            "folder",
            f"Archived {len(documents)} documents ({transferred} copied), folder deleted",
            transferred,
            deleted=True,
        )

    def sync_documents(self) -> list[SyncResult]:
        """Reconcile every dated subfolder under the source root."""
        documents_config = self.config.documents
        if documents_config is None:
            return []

        results = []
        for entry in self.operations.list_entries(documents_config.source_root):
            if not entry.is_folder:
                continue
            if year_prefix(entry.name) is None:
                logger.debug("Ignoring %s: no year prefix", entry.name)
                continue
            results.append(self.sync_dated_folder(entry.name))
        return results

    # =========================================================================
    # Tick
    # =========================================================================

    def _tasks(self) -> list[tuple[str, Callable[[], SyncResult | list[SyncResult]]]]:
        """All independent units of work for one tick, with labels."""
        tasks: list[tuple[str, Callable[[], SyncResult | list[SyncResult]]]] = []

        files = self.config.files
        if files is not None:
            for name in files.names:
                label = join_path(files.source_folder, name)
                tasks.append((label, lambda name=name: self.sync_fixed_file(name)))

        if self.config.documents is not None:
            tasks.append((self.config.documents.source_root, self.sync_documents))

        return tasks

    def run_tick(self) -> TickReport:
        """Run every reconciliation task concurrently and wait for all of them.

        Raises:
            DropboxAuthError: If no access token can be obtained. Raised only
                after every task has settled.
        """
        # Fails the tick before any work starts if the refresh token is bad
        self.operations.client.auth.get_valid_token()

        report = TickReport()
        tasks = self._tasks()
        if not tasks:
            logger.info("Nothing configured to reconcile")
            return report

        futures: dict[Future, str] = {}
        with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="reconcile") as executor:
            for label, task in tasks:
                futures[executor.submit(task)] = label
            wait(futures)

        auth_error: DropboxAuthError | None = None
        for future, label in futures.items():
            try:
                outcome = future.result()
            except DropboxAuthError as e:
                auth_error = auth_error or e
                continue
            except Exception as e:
                logger.exception("Reconciliation of %s failed", label)
                report.results.append(SyncResult(False, label, "task", f"Unexpected error: {e}"))
                continue

            if isinstance(outcome, list):
                report.results.extend(outcome)
            else:
                report.results.append(outcome)

        if auth_error is not None:
            raise auth_error

        logger.info(
            "Tick finished: %d items, %d copied, %d deleted, %d failed",
            len(report.results), report.transferred, report.deleted, len(report.failed),
        )
        return report
