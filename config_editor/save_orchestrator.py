"""
Save orchestration for the configuration editor.

A save is a two-step flow: request_save() gathers the diff of the primary
document and of every side channel into one list for the user to review,
and confirm_save() hands those same drafts to the tool's save operation. Only
a successful save rebases the drafts; a failure leaves everything editable
so the user can retry, adjust or reset.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

from pydantic import BaseModel, ConfigDict

from .diff_utils import DiffEntry, json_equal, summarize_diff
from .draft_state import DraftStateManager, LoadState
from .exceptions import (
    DuplicateKeyError,
    SaveFailure,
    SaveInProgressError,
    SaveNotPendingError,
    ValueParseError,
)
from .notices import Notice

logger = logging.getLogger(__name__)

SaveOperation = Callable[[Dict[str, Any], Dict[str, Any]], None]


class SaveStatus(str, Enum):
    NOTHING_TO_SAVE = "nothing_to_save"
    NEEDS_CONFIRMATION = "needs_confirmation"
    BLOCKED = "blocked"


class SaveRequest(BaseModel):
    """Outcome of request_save()."""

    model_config = ConfigDict(frozen=True)

    status: SaveStatus
    diffs: List[DiffEntry] = []
    notice: Optional[Notice] = None
    error: Optional[str] = None

    @property
    def needs_confirmation(self) -> bool:
        return self.status == SaveStatus.NEEDS_CONFIRMATION


class SaveResult(BaseModel):
    """Outcome of confirm_save()."""

    model_config = ConfigDict(frozen=True)

    success: bool
    notice: Notice
    error: Optional[str] = None


@dataclass(frozen=True)
class _ReviewedDrafts:
    """The drafts a pending diff was computed from."""
    generation: int
    settings: Dict[str, Any]
    side_documents: Dict[str, Any]


class SaveOrchestrator:
    """
    Combines the primary diff with side-channel diffs and drives the
    confirm-then-write flow for one tool.

    Args:
        manager: Editing session of the tool
        save_operation: Callable receiving (settings, side_documents);
            defaults to manager.store.save_settings
    """

    def __init__(self, manager: DraftStateManager, save_operation: Optional[SaveOperation] = None):
        self.manager = manager
        self._save_operation = save_operation or manager.store.save_settings
        self.pending: Optional[SaveRequest] = None
        self._reviewed: Optional[_ReviewedDrafts] = None

    @property
    def is_saving(self) -> bool:
        return self.manager.saving

    @property
    def can_save(self) -> bool:
        return self.manager.is_ready and not self.manager.saving

    def _collect_diffs(self) -> List[DiffEntry]:
        diffs = self.manager.compute_diffs()
        for channel in self.manager.side_channels:
            diffs.extend(channel.compute_diffs())
        return diffs

    def _side_documents(self) -> Dict[str, Any]:
        return {channel.name: channel.payload() for channel in self.manager.side_channels}

    def _matches_review(self, settings: Dict[str, Any], side_documents: Dict[str, Any]) -> bool:
        reviewed = self._reviewed
        return (
            reviewed is not None
            and reviewed.generation == self.manager.generation
            and json_equal(reviewed.settings, settings)
            and json_equal(reviewed.side_documents, side_documents)
        )

    def request_save(self) -> SaveRequest:
        """
        Compute the combined diff list.

        Returns:
            NOTHING_TO_SAVE when neither the document nor any channel changed,
            BLOCKED when a side-channel value is invalid, otherwise
            NEEDS_CONFIRMATION with the diffs to show

        Raises:
            EditorNotReadyError: If the session is not loaded
            SaveInProgressError: If a save is running
        """
        self.manager.require_ready()
        if self.manager.saving:
            raise SaveInProgressError(self.manager.tool)

        self.cancel_save()
        try:
            diffs = self._collect_diffs()
            side_documents = self._side_documents()
        except (DuplicateKeyError, ValueParseError) as e:
            logger.warning(f"Save blocked for {self.manager.tool}: {e.message}")
            return SaveRequest(
                status=SaveStatus.BLOCKED,
                error=e.message,
                notice=Notice.error("Cannot save", e.message, kind='invalid_input'),
            )

        channels_dirty = any(channel.is_dirty for channel in self.manager.side_channels)
        if not diffs and not channels_dirty:
            return SaveRequest(
                status=SaveStatus.NOTHING_TO_SAVE,
                notice=Notice.info("Nothing to save", "Change the configuration before saving.",
                                   kind='nothing_to_save'),
            )

        self._reviewed = _ReviewedDrafts(self.manager.generation, self.manager.draft, side_documents)
        self.pending = SaveRequest(status=SaveStatus.NEEDS_CONFIRMATION, diffs=diffs)
        logger.info(f"Save requested for {self.manager.tool}: {summarize_diff(diffs)}")
        return self.pending

    def cancel_save(self) -> None:
        self.pending = None
        self._reviewed = None

    def confirm_save(self) -> SaveResult:
        """
        Write the drafts that were shown in the pending diff.

        If the drafts or the loaded documents changed since request_save(),
        nothing is written and the confirmation is dropped. On success every
        draft becomes the new original. On failure nothing is rebased and the
        confirmation stays pending so it can be retried.

        Raises:
            SaveNotPendingError: If no confirmation is pending
            EditorNotReadyError: If the session is not loaded
            SaveInProgressError: If a save is already running
        """
        if self.pending is None or not self.pending.needs_confirmation:
            raise SaveNotPendingError(self.manager.tool)
        self.manager.require_ready()
        if self.manager.saving:
            raise SaveInProgressError(self.manager.tool)

        try:
            settings = self.manager.draft
            side_documents = self._side_documents()
        except (DuplicateKeyError, ValueParseError) as e:
            self.cancel_save()
            return SaveResult(
                success=False,
                error=e.message,
                notice=Notice.error("Cannot save", e.message, kind='invalid_input'),
            )

        if not self._matches_review(settings, side_documents):
            self.cancel_save()
            message = "The configuration changed after the diff was shown. Review the changes again."
            logger.warning(f"Discarded stale save confirmation for {self.manager.tool}")
            return SaveResult(
                success=False,
                error=message,
                notice=Notice.warning("Review again", message, kind='stale_review'),
            )

        self.manager.saving = True
        try:
            self._save_operation(settings, side_documents)
        except Exception as e:
            failure = e if isinstance(e, SaveFailure) else SaveFailure(self.manager.tool, e)
            logger.error(f"Save failed for {self.manager.tool}: {failure.message}", exc_info=True)
            return SaveResult(
                success=False,
                error=failure.message,
                notice=Notice.error("Save failed", failure.message, kind='save_failed'),
            )
        finally:
            self.manager.saving = False

        self.manager.commit()
        for channel in self.manager.side_channels:
            channel.commit()
        self.cancel_save()

        logger.info(f"Saved configuration for {self.manager.tool}")
        return SaveResult(
            success=True,
            notice=Notice.success("Saved", "Configuration written to the target files.", kind='saved'),
        )


class EditorSession:
    """
    The independent editing session of one tool: its draft manager and the
    save orchestrator driving it.
    """

    def __init__(self, store: Any):
        self.store = store
        self.manager = DraftStateManager(store)
        self.orchestrator = SaveOrchestrator(self.manager)

    @property
    def name(self) -> str:
        return self.manager.tool

    def ensure_loaded(self) -> None:
        """Load on first use; later reloads are explicit."""
        if self.manager.state == LoadState.UNLOADED:
            self.manager.load()
