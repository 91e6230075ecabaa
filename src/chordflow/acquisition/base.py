from abc import ABC, abstractmethod

from ..models import ImportResult, SearchCandidate

MAX_CANDIDATES = 3


class KnowledgeService(ABC):
    """Abstract base class for remote song lookup services.

    Implementations own the transport and the response parsing: every method
    returns validated model objects or raises a
    :class:`~chordflow.exceptions.ChordflowError` subclass.  Loosely typed
    payloads never leave the service.
    """

    @abstractmethod
    async def extract(self, data: bytes | str, mime_type: str) -> ImportResult:
        """Transcribe title, artist and chord sheet from an uploaded file or pasted text.

        Raises ConfigurationError, RemoteCallError or ParseError.
        """

    @abstractmethod
    async def search(self, query: str) -> list[SearchCandidate]:
        """Return up to :data:`MAX_CANDIDATES` songs matching *query*.

        Raises NotFoundError when the service answers with an empty list.
        """

    @abstractmethod
    async def fetch_content(self, title: str, artist: str) -> ImportResult:
        """Fetch the full lyrics and chords for one chosen candidate."""

    async def aclose(self) -> None:
        """Release transport resources.  Default is a no-op."""

    async def fetch_candidate(self, candidate: SearchCandidate) -> ImportResult:
        """Convenience method: fetch_content for a search hit."""
        return await self.fetch_content(candidate.title, candidate.artist)
