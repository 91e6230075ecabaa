"""Runtime settings read from the process environment.

The API key is optional at load time.  Commands that never reach the remote
service (listing, rendering, setlists) work without one; the service raises
:class:`~chordflow.exceptions.ConfigurationError` on its first call instead.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Checked in order; the first non-empty value wins.
API_KEY_VARS = ("CHORDFLOW_API_KEY", "GEMINI_API_KEY", "API_KEY")

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_DATA_DIR = Path("~/.chordflow")
DEFAULT_TIMEOUT = 30.0


@dataclass
class Settings:
    api_key: str = ""
    model: str = DEFAULT_MODEL
    data_dir: Path = DEFAULT_DATA_DIR
    timeout: float = DEFAULT_TIMEOUT

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError(
                f"No API key configured. Set one of: {', '.join(API_KEY_VARS)}"
            )
        return self.api_key


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from *environ* (defaults to ``os.environ``)."""
    env = os.environ if environ is None else environ

    api_key = next((env[v].strip() for v in API_KEY_VARS if env.get(v, "").strip()), "")
    if not api_key:
        logger.debug("No API key in environment; remote lookups will fail on first use")

    raw_timeout = env.get("CHORDFLOW_TIMEOUT", "").strip()
    try:
        timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT
    except ValueError as exc:
        raise ConfigurationError(f"CHORDFLOW_TIMEOUT must be a number, got {raw_timeout!r}") from exc
    if timeout <= 0:
        raise ConfigurationError(f"CHORDFLOW_TIMEOUT must be positive, got {timeout}")

    return Settings(
        api_key=api_key,
        model=env.get("CHORDFLOW_MODEL", "").strip() or DEFAULT_MODEL,
        data_dir=Path(env.get("CHORDFLOW_DATA_DIR", "").strip() or DEFAULT_DATA_DIR).expanduser(),
        timeout=timeout,
    )
