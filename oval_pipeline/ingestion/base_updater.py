"""
Base updater interface for all vulnerability sources.

Defines the contract that every updater implements, the response it hands
back to the pipeline, and the typed errors that abort an update.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from normalization.models import Vulnerability


class UpdaterError(Exception):
    """Base class for errors that abort an update."""


class TransportError(UpdaterError):
    """A listing or document could not be downloaded."""


class DocumentParseError(UpdaterError):
    """A downloaded document could not be decoded."""


@dataclass
class UpdateResponse:
    """
    Result of one update batch.

    flags holds the key-value pairs (the cursor) that must be persisted
    together with the vulnerabilities; it is empty when nothing new was
    selected.
    """
    vulnerabilities: List[Vulnerability] = field(default_factory=list)
    flags: Dict[str, str] = field(default_factory=dict)
    candidates: List[int] = field(default_factory=list)
    advisories_decoded: int = 0
    possibilities_discarded: int = 0


@dataclass
class UpdaterHealth:
    """Health status of an updater."""
    updater_id: str
    is_healthy: bool
    last_update: Optional[datetime]
    vulnerabilities_fetched: int
    error_message: Optional[str] = None


class BaseUpdater(ABC):
    """
    Abstract base class for vulnerability source updaters.

    Subclasses implement update(); errors raised from it are recorded for
    get_health() by the run() wrapper and then propagated.
    """

    updater_id: str = ""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self._last_update: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._vulnerabilities_fetched: int = 0
        self.cursor_key: str = config.get("cursor_key", f"{self.updater_id}Updater")

    @abstractmethod
    def update(self, cursor: Optional[str]) -> UpdateResponse:
        """
        Fetch everything newer than cursor.

        Args:
            cursor: Stored cursor value, None if never set

        Returns:
            UpdateResponse with vulnerabilities and the proposed cursor

        Raises:
            TransportError: If a download fails
            DocumentParseError: If a document cannot be decoded
        """
        pass

    def clean(self) -> None:
        """Release resources held between updates."""

    def run(self, cursor: Optional[str]) -> UpdateResponse:
        """update() with health bookkeeping."""
        self._last_update = datetime.utcnow()
        try:
            response = self.update(cursor)
        except Exception as e:
            self._last_error = f"{type(e).__name__}: {e}"
            self._vulnerabilities_fetched = 0
            raise

        self._last_error = None
        self._vulnerabilities_fetched = len(response.vulnerabilities)
        return response

    def get_health(self) -> UpdaterHealth:
        """Return health status of this updater."""
        return UpdaterHealth(
            updater_id=self.updater_id,
            is_healthy=self._last_error is None,
            last_update=self._last_update,
            vulnerabilities_fetched=self._vulnerabilities_fetched,
            error_message=self._last_error
        )
