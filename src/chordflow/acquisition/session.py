"""One search → select → fetch workflow against a :class:`KnowledgeService`.

States::

    IDLE ──search──▶ SEARCHING ──▶ RESULTS_READY ──select──▶ FETCHING_CONTENT ──▶ IMPORTED
                         │                                          │
                         ▼                                          ▼
                   SEARCH_FAILED                              FETCH_FAILED

    IDLE ──extract──▶ EXTRACTING ──▶ IMPORTED | EXTRACT_FAILED

Every remote call takes the next number from a per-session counter.  When a
call returns, its result is applied only if no later call has been issued
since; otherwise it is dropped.  That is the whole cancellation model: the
remote request itself is never aborted.

Failures never escape: they are stored on the session as a :class:`Failure`
and the session accepts a new ``search`` or ``extract`` immediately.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto

from ..exceptions import (
    ChordflowError,
    ConfigurationError,
    EmptyResponseError,
    InvalidStructuredDataError,
    NoStructuredDataError,
    NotFoundError,
)
from ..models import ImportResult, SearchCandidate
from .base import KnowledgeService

logger = logging.getLogger(__name__)


class AcquisitionState(Enum):
    IDLE = auto()
    SEARCHING = auto()
    RESULTS_READY = auto()
    SEARCH_FAILED = auto()
    FETCHING_CONTENT = auto()
    FETCH_FAILED = auto()
    EXTRACTING = auto()
    EXTRACT_FAILED = auto()
    IMPORTED = auto()


class FailureKind(Enum):
    NOT_FOUND = "not_found"  # try a different query
    CONFIGURATION = "configuration"  # fix the API key / settings
    TRANSIENT = "transient"  # retry the same query
    MALFORMED = "malformed"  # service answered, but not in the expected shape


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str


def describe_failure(exc: ChordflowError) -> Failure:
    """Map an exception to a user-facing :class:`Failure`."""
    if isinstance(exc, ConfigurationError):
        return Failure(FailureKind.CONFIGURATION, f"Configuration problem: {exc}")
    if isinstance(exc, (NotFoundError, NoStructuredDataError)):
        return Failure(FailureKind.NOT_FOUND, f"Nothing usable found ({exc}). Try a different search.")
    if isinstance(exc, InvalidStructuredDataError):
        return Failure(FailureKind.MALFORMED, f"The service sent {exc}. Try again.")
    if isinstance(exc, EmptyResponseError):
        return Failure(FailureKind.TRANSIENT, "The service sent no response. Try again.")
    return Failure(FailureKind.TRANSIENT, f"Request failed: {exc}. Try again.")


class AcquisitionSession:
    """State for one import dialog.  Persisting the imported song is up to the caller."""

    def __init__(self, service: KnowledgeService):
        self.service = service
        self.state = AcquisitionState.IDLE
        self.query = ""
        self.candidates: list[SearchCandidate] = []
        self.selected: SearchCandidate | None = None
        self.result: ImportResult | None = None
        self.failure: Failure | None = None
        self.sequence = 0  # number of the most recently issued request

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------

    async def search(self, query: str) -> bool:
        """Run a search.  Returns True if its results became the visible state.

        A blank query is ignored: no request is made and nothing changes.
        """
        if not query.strip():
            logger.debug("Ignoring empty search query")
            return False

        seq = self._begin(AcquisitionState.SEARCHING)
        self.query = query.strip()
        self.candidates = []
        self.selected = None
        try:
            candidates = await self.service.search(self.query)
        except ChordflowError as exc:
            return self._fail(seq, AcquisitionState.SEARCH_FAILED, exc)

        if not self._is_current(seq):
            return False
        self.candidates = candidates
        self.state = AcquisitionState.RESULTS_READY
        return True

    async def select(self, choice: SearchCandidate | int) -> bool:
        """Fetch full content for one of the current candidates."""
        if self.state not in (AcquisitionState.RESULTS_READY, AcquisitionState.FETCH_FAILED):
            raise RuntimeError(f"Cannot select a candidate while {self.state.name}")
        if isinstance(choice, int):
            if not 0 <= choice < len(self.candidates):
                raise ValueError(
                    f"choice {choice} is out of range for {len(self.candidates)} search result(s)"
                )
            candidate = self.candidates[choice]
        else:
            candidate = choice
        if candidate not in self.candidates:
            raise ValueError(f"{candidate!r} is not one of the current search results")

        seq = self._begin(AcquisitionState.FETCHING_CONTENT)
        self.selected = candidate
        try:
            result = await self.service.fetch_candidate(candidate)
        except ChordflowError as exc:
            return self._fail(seq, AcquisitionState.FETCH_FAILED, exc)

        return self._import(seq, result)

    async def extract(self, data: bytes | str, mime_type: str) -> bool:
        """Single-shot import from an uploaded file or pasted text."""
        seq = self._begin(AcquisitionState.EXTRACTING)
        try:
            result = await self.service.extract(data, mime_type)
        except ChordflowError as exc:
            return self._fail(seq, AcquisitionState.EXTRACT_FAILED, exc)

        return self._import(seq, result)

    def reset(self) -> None:
        """Return to IDLE.  Any request still in flight will be ignored."""
        self._begin(AcquisitionState.IDLE)
        self.query = ""
        self.candidates = []
        self.selected = None

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _begin(self, state: AcquisitionState) -> int:
        self.sequence += 1
        self.state = state
        self.failure = None
        self.result = None
        return self.sequence

    def _is_current(self, seq: int) -> bool:
        if seq != self.sequence:
            logger.debug("Discarding stale response #%d (latest is #%d)", seq, self.sequence)
            return False
        return True

    def _import(self, seq: int, result: ImportResult) -> bool:
        if not self._is_current(seq):
            return False
        self.result = result
        self.state = AcquisitionState.IMPORTED
        return True

    def _fail(self, seq: int, state: AcquisitionState, exc: ChordflowError) -> bool:
        if not self._is_current(seq):
            return False
        logger.warning("%s: %s", state.name, exc)
        self.failure = describe_failure(exc)
        self.state = state
        return False
