"""Knowledge service backed by the Gemini ``generateContent`` REST endpoint.

Endpoint::

    POST https://generativelanguage.googleapis.com/v1beta/models/<model>:generateContent
    x-goog-api-key: <key>

Response text lives at ``candidates[0].content.parts[*].text``.

Two request modes are used:

strict (``extract``)
    ``generationConfig.responseMimeType = application/json`` plus a
    ``responseSchema``; the text is parsed directly with :func:`json.loads`.

grounded (``search``, ``fetch_content``)
    ``tools = [{"google_search": {}}]``.  Search grounding cannot be combined
    with a response schema, so the model is only *asked* for JSON and the
    reply goes through :func:`~chordflow.acquisition.parsing.extract_json`.
"""

import base64
import json
import logging
import re

import httpx
from bs4 import BeautifulSoup

from ..config import Settings
from ..exceptions import (
    ConfigurationError,
    EmptyResponseError,
    InvalidStructuredDataError,
    NotFoundError,
    RemoteCallError,
)
from ..models import ImportResult, SearchCandidate
from .base import MAX_CANDIDATES, KnowledgeService
from .parsing import extract_json

logger = logging.getLogger(__name__)

API_BASE = "https://generativelanguage.googleapis.com/v1beta"

_SONG_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING"},
        "artist": {"type": "STRING"},
        "content": {"type": "STRING", "description": "Song body with chords/lyrics"},
    },
    "required": ["title", "artist", "content"],
}

_EXTRACT_PROMPT = """\
You are an expert music transcriber.
Analyze the provided content. Extract the song title, artist, and the lyrics with chords.
Format chords in ChordPro style (chords in brackets, e.g. [C]) or as chord lines above the lyrics.
Preserve line breaks.
Return JSON."""

_SEARCH_PROMPT = """\
Search the web for songs matching: "{query}".
Return at most {limit} of the most likely matches as a JSON array (no Markdown code blocks):
[
  {{"title": "Exact Song Title", "artist": "Artist Name", "snippet": "One line to tell versions apart"}}
]
Return [] if nothing matches."""

_FETCH_PROMPT = """\
Search the web for the official lyrics and guitar chords for the song "{title}" by {artist}.
Prefer accurate versions from reputable chord sites.
Output the result as a valid JSON object (no Markdown code blocks) with this structure:
{{
  "title": "Exact Song Title",
  "artist": "Artist Name",
  "content": "The full lyrics with chords. Use ChordPro format (e.g. [Am]Amazing [G]grace) if found, otherwise keep chords above lyrics."
}}"""

_BLANK_RUN_RE = re.compile(r"\n{3,}")


def _html_to_text(html: str) -> str:
    """Reduce a saved chord page to its visible text, keeping line structure."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = soup.get_text("\n")
    return _BLANK_RUN_RE.sub("\n\n", text).strip()


def _content_parts(data: bytes | str, mime_type: str) -> list[dict]:
    """Turn uploaded data into request parts.

    Text formats are sent as text; anything else (images, PDFs) is sent
    inline as base64.
    """
    if isinstance(data, bytes) and not mime_type.startswith("text/"):
        encoded = base64.b64encode(data).decode("ascii")
        return [{"inline_data": {"mime_type": mime_type, "data": encoded}}]

    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    if mime_type == "text/html":
        text = _html_to_text(text)
    return [{"text": f"Additional Text: {text}"}]


def _response_text(payload) -> str | None:
    """Concatenate the text parts of the first usable candidate.

    Returns ``None`` when the service sent no candidates or no text.  An
    envelope of the wrong shape raises :class:`InvalidStructuredDataError`.
    """
    if not isinstance(payload, dict):
        raise InvalidStructuredDataError("response envelope is not an object")
    candidates = payload.get("candidates") or []
    if not isinstance(candidates, list):
        raise InvalidStructuredDataError("'candidates' is not a list")
    if not candidates:
        return None

    usable = [c for c in candidates if isinstance(c, dict)]
    if not usable:
        raise InvalidStructuredDataError("no candidate is an object")
    content = usable[0].get("content") or {}
    if not isinstance(content, dict):
        raise InvalidStructuredDataError("candidate content is not an object")
    parts = content.get("parts") or []
    if not isinstance(parts, list):
        raise InvalidStructuredDataError("'parts' is not a list")

    text = "".join(
        p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)
    )
    return text or None


def _error_detail(resp: httpx.Response) -> str:
    try:
        return resp.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return resp.reason_phrase


class GeminiService(KnowledgeService):
    """Remote song lookup through Gemini with Google Search grounding."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self.settings = settings
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def extract(self, data: bytes | str, mime_type: str) -> ImportResult:
        parts = [{"text": _EXTRACT_PROMPT}, *_content_parts(data, mime_type)]
        text = await self._generate("extract", parts, schema=_SONG_SCHEMA)
        if text is None:
            raise EmptyResponseError()
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidStructuredDataError(str(exc)) from exc
        return ImportResult.from_payload(payload)

    async def search(self, query: str) -> list[SearchCandidate]:
        query = query.strip()
        if not query:
            raise ValueError("search query must not be empty")

        prompt = _SEARCH_PROMPT.format(query=query, limit=MAX_CANDIDATES)
        text = await self._generate("search", [{"text": prompt}], grounded=True)
        payload = extract_json(text)

        # Models sometimes wrap the list ({"results": [...]}) or return one object.
        if isinstance(payload, dict):
            payload = payload.get("results", [payload] if "title" in payload else payload)
        if not isinstance(payload, list):
            raise InvalidStructuredDataError("expected a list of search results")

        candidates = [SearchCandidate.from_payload(p) for p in payload[:MAX_CANDIDATES]]
        if not candidates:
            raise NotFoundError(query)
        logger.info("Search %r returned %d candidate(s)", query, len(candidates))
        return candidates

    async def fetch_content(self, title: str, artist: str) -> ImportResult:
        prompt = _FETCH_PROMPT.format(title=title, artist=artist or "an unknown artist")
        text = await self._generate("fetch_content", [{"text": prompt}], grounded=True)
        return ImportResult.from_payload(extract_json(text))

    # -----------------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------------

    async def _generate(
        self,
        operation: str,
        parts: list[dict],
        *,
        schema: dict | None = None,
        grounded: bool = False,
    ) -> str | None:
        """POST one generateContent request and return the reply text (or None)."""
        api_key = self.settings.require_api_key()

        body: dict = {"contents": [{"parts": parts}]}
        if schema is not None:
            body["generationConfig"] = {
                "responseMimeType": "application/json",
                "responseSchema": schema,
            }
        if grounded:
            body["tools"] = [{"google_search": {}}]

        url = f"{API_BASE}/models/{self.settings.model}:generateContent"
        logger.debug("%s: POST %s", operation, url)
        try:
            resp = await self.client.post(url, json=body, headers={"x-goog-api-key": api_key})
        except httpx.RequestError as exc:
            raise RemoteCallError(operation, 0, str(exc) or type(exc).__name__) from exc

        if resp.status_code in (401, 403) or (
            resp.status_code == 400 and "API_KEY_INVALID" in resp.text
        ):
            raise ConfigurationError(f"API key rejected by the service: {_error_detail(resp)}")
        if resp.status_code != 200:
            raise RemoteCallError(operation, resp.status_code, _error_detail(resp))

        try:
            payload = resp.json()
        except ValueError as exc:
            raise RemoteCallError(operation, resp.status_code, "response body is not JSON") from exc
        return _response_text(payload)
