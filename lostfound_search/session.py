"""
Search session state for the image search dialog.

States:
    IDLE → UPLOADING → PREVIEWED → ANALYZING → RESULTS_SHOWN | ERROR_SHOWN

A terminal state goes back to PREVIEWED on retry() (find_matches() does
this itself before starting the next search) or when a new image is
selected, and to IDLE on reset(). ANALYZING always resolves to
RESULTS_SHOWN or ERROR_SHOWN, whatever the search raises.

Every search gets a monotonically increasing sequence number. Results are
only applied if their number is still the latest when they arrive, so a
slow earlier search can never overwrite a newer one. Selecting a new image
or resetting also invalidates in-flight searches.
"""

import logging
import threading
from enum import Enum
from typing import List, Optional, Tuple

from .engine import SearchEngine, SearchResult
from .errors import SearchError
from .models import ScoredItem
from .preprocessing import decode_image_bytes, read_source_bytes

logger = logging.getLogger(__name__)


class SearchState(Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    PREVIEWED = "previewed"
    ANALYZING = "analyzing"
    RESULTS_SHOWN = "results_shown"
    ERROR_SHOWN = "error_shown"


TERMINAL_STATES = {SearchState.RESULTS_SHOWN, SearchState.ERROR_SHOWN}

# States from which a search may be started (terminal states retry first)
SEARCHABLE_STATES = {SearchState.PREVIEWED, SearchState.ANALYZING}


class InvalidTransitionError(SearchError):
    """Requested action is not allowed in the current session state."""


class SearchSession:
    """Tracks one user's image search dialog against a SearchEngine."""

    def __init__(self, engine: SearchEngine):
        self.engine = engine
        self._lock = threading.Lock()
        self._state = SearchState.IDLE
        self._image: Optional[bytes] = None
        self._sequence = 0
        self._result: Optional[SearchResult] = None
        self._error: Optional[Exception] = None

    @property
    def state(self) -> SearchState:
        return self._state

    @property
    def latest_sequence(self) -> int:
        return self._sequence

    @property
    def result(self) -> Optional[SearchResult]:
        return self._result

    @property
    def results(self) -> List[ScoredItem]:
        return self._result.results if self._result else []

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    def select_image(self, source) -> None:
        """
        Accept a newly selected image and move to PREVIEWED.

        The image is decoded once up front so that non-image files are
        rejected before a search is attempted. On failure the session
        keeps its previous state and the error is raised.
        """
        with self._lock:
            previous = self._state
            self._state = SearchState.UPLOADING

        try:
            data = read_source_bytes(source)
            decode_image_bytes(data)
        except SearchError:
            with self._lock:
                self._state = previous
            raise

        with self._lock:
            self._image = data
            self._sequence += 1
            self._result = None
            self._error = None
            self._state = SearchState.PREVIEWED
        logger.info(f"Image selected ({len(data)} bytes)")

    def retry(self) -> None:
        """Return from RESULTS_SHOWN or ERROR_SHOWN to PREVIEWED, keeping the image."""
        with self._lock:
            self._retry_locked()

    def begin_search(self) -> int:
        """Start a search and return its sequence number."""
        sequence, _ = self._begin()
        return sequence

    def complete_search(self, sequence: int,
                        result: Optional[SearchResult] = None,
                        error: Optional[Exception] = None) -> bool:
        """
        Apply the outcome of a search if it is still the latest one.

        Returns:
            True if applied, False if the outcome was stale and discarded.
        """
        with self._lock:
            if sequence != self._sequence or self._state != SearchState.ANALYZING:
                logger.warning(
                    f"Discarding stale search #{sequence} (latest is #{self._sequence})"
                )
                return False

            if error is not None:
                self._result = None
                self._error = error
                self._state = SearchState.ERROR_SHOWN
            else:
                self._result = result
                self._error = None
                self._state = SearchState.RESULTS_SHOWN
            return True

    def find_matches(self) -> Optional[SearchResult]:
        """
        Run a search for the selected image.

        SearchErrors are recorded on the session (state ERROR_SHOWN) rather
        than raised. Any other exception is recorded the same way and then
        re-raised. Returns the result, or None if the search failed or was
        superseded while running.
        """
        sequence, image = self._begin()

        try:
            result = self.engine.search(image, sequence=sequence)
        except SearchError as e:
            logger.error(f"Search #{sequence} failed: {e}")
            self.complete_search(sequence, error=e)
            return None
        except Exception as e:
            logger.error(f"Search #{sequence} crashed: {e!r}")
            self.complete_search(sequence, error=e)
            raise

        if not self.complete_search(sequence, result=result):
            return None
        return result

    def reset(self) -> None:
        """Clear the dialog and invalidate any in-flight search."""
        with self._lock:
            self._sequence += 1
            self._image = None
            self._result = None
            self._error = None
            self._state = SearchState.IDLE

    def _begin(self) -> Tuple[int, bytes]:
        # Sequence and image are taken together under the lock
        with self._lock:
            if self._state in TERMINAL_STATES:
                self._retry_locked()
            if self._state not in SEARCHABLE_STATES or self._image is None:
                raise InvalidTransitionError(
                    f"Cannot search from state {self._state.value}"
                )
            self._sequence += 1
            self._state = SearchState.ANALYZING
            return self._sequence, self._image

    def _retry_locked(self) -> None:
        if self._state not in TERMINAL_STATES:
            raise InvalidTransitionError(
                f"Cannot retry from state {self._state.value}"
            )
        self._state = SearchState.PREVIEWED
        self._result = None
        self._error = None
