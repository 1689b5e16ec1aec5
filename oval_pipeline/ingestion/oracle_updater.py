"""
Oracle Linux OVAL updater.

Each run:
1. Loads the last processed ELSA id (cursor), falling back to a baseline
2. Downloads the feed index and selects ELSA ids above the cursor
3. Fetches, decodes and normalizes each selected document in parallel
4. Proposes the largest selected id as the new cursor

Any download or decode failure aborts the whole batch: no vulnerabilities
and no cursor are returned, so the next run retries the same ids.
"""
import logging
import re
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

import requests

from normalization.features import FeatureExtractor
from normalization.models import Vulnerability
from normalization.vulnerability import DEFAULT_REFERENCE_SOURCE, build_vulnerabilities

from .base_updater import BaseUpdater, TransportError, UpdateResponse
from .http_client import CircuitOpenError, HttpClient, RetryConfig
from .oval_decoder import decode_advisories

logger = logging.getLogger(__name__)

FIRST_ORACLE5_ELSA = 20070057
OVAL_URI = "https://linux.oracle.com/oval/"
ELSA_FILE_PREFIX = "com.oracle.elsa-"

_DECIMAL = re.compile(r"[0-9]+")


class UpdateStage(Enum):
    START = "start"
    CURSOR_LOADED = "cursor_loaded"
    LISTING_FETCHED = "listing_fetched"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


def compare_advisory_ids(left: Union[int, str], right: Union[int, str]) -> int:
    """
    Compare two advisory ids numerically, digit by digit.

    Returns:
        Negative if left < right, zero if equal, positive if left > right
    """
    lstr = str(left).strip().lstrip("0") or "0"
    rstr = str(right).strip().lstrip("0") or "0"

    if len(lstr) != len(rstr):
        return len(lstr) - len(rstr)

    for ldigit, rdigit in zip(lstr, rstr):
        if ldigit != rdigit:
            return 1 if ldigit > rdigit else -1
    return 0


def load_cursor(value: Optional[str], baseline: int = FIRST_ORACLE5_ELSA) -> int:
    """Parse a stored cursor, falling back to baseline when absent or malformed."""
    if value is None:
        return baseline
    if not _DECIMAL.fullmatch(value.strip()):
        logger.warning("ignoring malformed cursor value %r", value)
        return baseline
    return int(value.strip())


class OracleUpdater(BaseUpdater):
    """Updater for the Oracle Linux OVAL feed."""

    updater_id = "oracle"

    def __init__(self, config: Optional[Dict[str, Any]] = None, client: Optional[HttpClient] = None):
        config = config or {}
        super().__init__(config)
        self.base_url = config.get("base_url", OVAL_URI)
        self.file_prefix = config.get("file_prefix", ELSA_FILE_PREFIX)
        self.baseline_id = int(config.get("baseline_id", FIRST_ORACLE5_ELSA))
        self.reference_source = config.get("reference_source", DEFAULT_REFERENCE_SOURCE)
        self.max_workers = max(1, int(config.get("max_workers", 4)))
        self.stage = UpdateStage.START

        self.id_pattern = re.compile(re.escape(self.file_prefix) + r"(\d+)\.xml")
        self.extractor = FeatureExtractor(
            distro_name=config.get("distro_name", "Oracle Linux"),
            namespace_prefix=config.get("namespace_prefix", "oracle"),
        )
        self.client = client or HttpClient(
            source_id=self.updater_id,
            rate_limit_per_minute=config.get("rate_limit_per_minute"),
            rate_limit_burst=config.get("rate_limit_burst"),
            retry_config=RetryConfig(
                max_retries=config.get("max_retries", 3),
                base_delay_seconds=config.get("retry_base_seconds", 1.0),
                max_delay_seconds=config.get("retry_max_seconds", 60.0),
                timeout_seconds=config.get("timeout_seconds", 30.0),
            ),
            user_agent=config.get("user_agent", "oval-pipeline/0.1"),
        )

    def update(self, cursor: Optional[str]) -> UpdateResponse:
        logger.info("Start fetching vulnerabilities for Oracle Linux")
        self.stage = UpdateStage.START

        try:
            first_elsa = load_cursor(cursor, self.baseline_id)
            self.stage = UpdateStage.CURSOR_LOADED

            listing = self._download_text(self.base_url)
            candidates = self.select_candidates(listing.splitlines(), first_elsa)
            self.stage = UpdateStage.LISTING_FETCHED
            logger.info("%d ELSA documents newer than %d", len(candidates), first_elsa)

            self.stage = UpdateStage.PROCESSING
            response = self._process_candidates(candidates)
        except Exception:
            self.stage = UpdateStage.FAILED
            raise

        if candidates:
            response.flags[self.cursor_key] = str(max(candidates))
        else:
            logger.debug("no update for Oracle Linux")

        self.stage = UpdateStage.DONE
        return response

    def clean(self) -> None:
        self.client.close()

    def select_candidates(self, lines: Iterable[str], cursor: int) -> List[int]:
        """ELSA ids from the listing that are newer than cursor, ascending."""
        found = set()
        for line in lines:
            match = self.id_pattern.search(line)
            if match and compare_advisory_ids(match.group(1), cursor) > 0:
                found.add(int(match.group(1)))
        return sorted(found)

    def document_url(self, elsa_id: int) -> str:
        return f"{self.base_url}{self.file_prefix}{elsa_id}.xml"

    def process_document(self, data: bytes, response: Optional[UpdateResponse] = None) -> List[Vulnerability]:
        """Decode one OVAL document and build its vulnerabilities."""
        vulnerabilities = []
        advisories = decode_advisories(data)
        for advisory in advisories:
            extraction = self.extractor.extract(advisory.criteria)
            if response is not None:
                response.possibilities_discarded += extraction.discarded
            vulnerabilities.extend(
                build_vulnerabilities(advisory, extraction.packages, self.reference_source)
            )
        if response is not None:
            response.advisories_decoded += len(advisories)
        return vulnerabilities

    def _process_candidates(self, candidates: List[int]) -> UpdateResponse:
        response = UpdateResponse(candidates=list(candidates))
        if not candidates:
            return response

        cancelled = threading.Event()
        lock = threading.Lock()
        collected: List[Vulnerability] = []

        def work(elsa_id: int) -> None:
            if cancelled.is_set():
                return
            try:
                data = self._download_bytes(self.document_url(elsa_id))
                partial = UpdateResponse()
                vulnerabilities = self.process_document(data, partial)
            except Exception:
                cancelled.set()
                raise
            logger.debug("ELSA %d yielded %d vulnerabilities", elsa_id, len(vulnerabilities))
            with lock:
                collected.extend(vulnerabilities)
                response.advisories_decoded += partial.advisories_decoded
                response.possibilities_discarded += partial.possibilities_discarded

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(work, elsa_id) for elsa_id in candidates]
            _, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in pending:
                future.cancel()

        for future in futures:
            if future.cancelled():
                continue
            error = future.exception()
            if error is not None:
                raise error

        response.vulnerabilities = collected
        return response

    def _download_text(self, url: str) -> str:
        try:
            return self.client.get_text(url)
        except (requests.RequestException, CircuitOpenError) as e:
            logger.error("could not download Oracle's update list from %s: %s", url, e)
            raise TransportError(f"could not download {url}: {e}") from e

    def _download_bytes(self, url: str) -> bytes:
        try:
            return self.client.get_bytes(url)
        except (requests.RequestException, CircuitOpenError) as e:
            logger.error("could not download ELSA document %s: %s", url, e)
            raise TransportError(f"could not download {url}: {e}") from e
