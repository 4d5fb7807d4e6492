"""Locate the ngrok agent config and pull the authtoken and static domain out of it."""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence

from .errors import ConfigurationError

logger = logging.getLogger("devtunnel")

DEFAULT_PORT = 5500
DEFAULT_HOST = "0.0.0.0"
DEFAULT_ARTIFACT = "dist.zip"
DEFAULT_ENTRY_FILE = "index.html"

TOKEN_KEY = "authtoken"
DOMAIN_KEY = "domain"

MISSING_TOKEN_REMEDIATION = """Please follow these steps:
1. Sign up at https://dashboard.ngrok.com/signup
2. Get your authtoken from https://dashboard.ngrok.com/get-started/your-authtoken
3. Run: ngrok config add-authtoken <YOUR_TOKEN>"""


def default_candidate_paths(home: Path, environ: Optional[Mapping[str, str]] = None) -> list[Path]:
    """Ordered ngrok config locations, one per OS convention."""
    environ = os.environ if environ is None else environ
    paths = [
        home / ".config" / "ngrok" / "ngrok.yml",
        home / "Library" / "Application Support" / "ngrok" / "ngrok.yml",
        home / ".ngrok2" / "ngrok.yml",
    ]
    local_app_data = environ.get("LOCALAPPDATA")
    if local_app_data:
        paths.append(Path(local_app_data) / "ngrok" / "ngrok.yml")
    return paths


@dataclass(frozen=True)
class ProviderConfig:
    auth_token: str
    static_domain: Optional[str] = None
    source: Optional[Path] = None


class LinePatternExtractor:
    """
    Pulls `key: value` lines out of a config file without parsing it.

    ngrok.yml carries far more than we care about, so we only look for the
    two keys we need. Comment lines are skipped, surrounding quotes dropped.
    """

    def extract(self, text: str, key: str) -> Optional[str]:
        pattern = re.compile(rf"^[ \t]*{re.escape(key)}:[ \t]*(\S+)", re.MULTILINE)
        match = pattern.search(text)
        if not match:
            return None
        value = match.group(1)
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        return value or None


class ConfigResolver:
    """Reads the first existing candidate config file, once, and answers token/domain lookups from it."""

    def __init__(self, candidate_paths: Sequence[Path], extractor: Optional[LinePatternExtractor] = None):
        self.candidate_paths = [Path(p) for p in candidate_paths]
        self.extractor = extractor or LinePatternExtractor()
        self._loaded = False
        self._source: Optional[Path] = None
        self._text: Optional[str] = None

    def find_config_file(self) -> Optional[Path]:
        """First candidate that exists wins; later files are never merged in."""
        for path in self.candidate_paths:
            if path.is_file():
                return path
        return None

    def _load_text(self) -> Optional[str]:
        if not self._loaded:
            self._source = self.find_config_file()
            if self._source is not None:
                logger.debug(f"Reading ngrok config from {self._source}")
                try:
                    self._text = self._source.read_text(encoding="utf-8", errors="replace")
                except OSError as e:
                    raise ConfigurationError(f"Could not read ngrok config {self._source}: {e}") from e
            self._loaded = True
        return self._text

    @property
    def source(self) -> Optional[Path]:
        self._load_text()
        return self._source

    def resolve_token(self) -> str:
        text = self._load_text()
        if text is None:
            searched = ", ".join(str(p) for p in self.candidate_paths) or "<no candidate paths>"
            raise ConfigurationError(
                f"ngrok authtoken not configured! No config file found (searched: {searched})",
                remediation=MISSING_TOKEN_REMEDIATION,
            )
        token = self.extractor.extract(text, TOKEN_KEY)
        if not token:
            raise ConfigurationError(
                f"ngrok authtoken not configured! {self._source} has no '{TOKEN_KEY}' entry",
                remediation=MISSING_TOKEN_REMEDIATION,
            )
        return token

    def resolve_static_domain(self) -> Optional[str]:
        text = self._load_text()
        if text is None:
            return None
        return self.extractor.extract(text, DOMAIN_KEY)

    def load(self) -> ProviderConfig:
        """Resolve both keys. Raises ConfigurationError when there is no token."""
        token = self.resolve_token()
        return ProviderConfig(auth_token=token, static_domain=self.resolve_static_domain(), source=self._source)


@dataclass
class ServeSettings:
    """Everything the serve command needs, gathered from CLI options and environment."""

    project_root: Path
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    artifact: str = DEFAULT_ARTIFACT
    entry_file: str = DEFAULT_ENTRY_FILE
    auth_token: Optional[str] = None
    domain: Optional[str] = None
    config_paths: list[Path] = field(default_factory=list)

    def __post_init__(self):
        self.project_root = Path(os.path.abspath(self.project_root))

    def provider_config(self, resolver: ConfigResolver) -> ProviderConfig:
        """Explicit options win; the config file fills in whatever is missing."""
        if self.auth_token:
            domain = self.domain or resolver.resolve_static_domain()
            return ProviderConfig(auth_token=self.auth_token, static_domain=domain, source=resolver.source)
        config = resolver.load()
        if self.domain:
            config = ProviderConfig(auth_token=config.auth_token, static_domain=self.domain, source=config.source)
        return config
