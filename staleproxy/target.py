"""Scrape orchestration for one upstream/downstream port pair."""
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging
import threading
import time

import requests

from staleproxy.config import StalenessConfig, UpstreamConfig
from staleproxy.parser import parse_exposition
from staleproxy.self_metrics import SelfMetrics
from staleproxy.serializer import render, unsupported_names
from staleproxy.tracker import SeriesState, StalenessTracker

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """The upstream exporter could not be scraped."""


@dataclass
class ScrapeResult:
    """Filtered payload of one scrape."""
    body: str
    live: int
    stale: int


class ScrapeTarget:
    """Fetches one upstream exporter and filters out its stale series."""

    def __init__(
        self,
        upstream_port: int,
        staleness: Optional[StalenessConfig] = None,
        upstream: Optional[UpstreamConfig] = None,
        self_metrics: Optional[SelfMetrics] = None
    ):
        staleness = staleness or StalenessConfig()
        self.upstream = upstream or UpstreamConfig()
        self.upstream_port = upstream_port
        self.url = f"http://{self.upstream.host}:{upstream_port}{self.upstream.path}"

        self.tracker = StalenessTracker(
            threshold=staleness.threshold,
            start_stale=staleness.start_stale,
            evict_after=staleness.evict_after
        )
        self.self_metrics = self_metrics or SelfMetrics()
        self.last_result: Optional[ScrapeResult] = None

        # Serializes parse, update and render against concurrent scrapes
        self._lock = threading.Lock()

    def fetch(self) -> str:
        """Fetch the upstream payload."""
        try:
            response = requests.get(self.url, timeout=self.upstream.timeout_s)
            text = response.text
        except requests.RequestException as e:
            raise UpstreamError(f"Failed to scrape {self.url}: {e}") from e

        if response.status_code != 200:
            raise UpstreamError(f"Failed to scrape {self.url}: HTTP {response.status_code}")
        return text

    def process(self, text: str) -> ScrapeResult:
        """Run one staleness cycle over an upstream payload."""
        with self._lock:
            families = parse_exposition(text)
            classification = self.tracker.update(families)
            body = render(families, classification)

            # Histogram and summary series never reach the output
            excluded = unsupported_names(families)
            live = stale = 0
            for identity, state in classification.items():
                if identity.name in excluded:
                    continue
                if state == SeriesState.LIVE:
                    live += 1
                else:
                    stale += 1

            result = ScrapeResult(body, live, stale)
            self.last_result = result
            tracked = len(self.tracker)

        self.self_metrics.set_series_counts(result.live, result.stale, tracked)
        return result

    def scrape(self) -> ScrapeResult:
        """
        Handle one downstream scrape.

        Raises:
            UpstreamError: when the upstream fetch fails; tracker state is left untouched
        """
        start = time.time()
        try:
            text = self.fetch()
        except UpstreamError as e:
            logger.error(str(e))
            self.self_metrics.record_upstream_error()
            self.self_metrics.record_scrape("error", time.time() - start)
            raise

        result = self.process(text)
        self.self_metrics.record_scrape("ok", time.time() - start)

        logger.debug(
            f"Scrape of {self.url}: {result.live} live, {result.stale} stale series"
        )
        return result

    def status(self) -> Dict[str, Any]:
        """Snapshot of the target's state."""
        with self._lock:
            last_result = self.last_result
            return {
                "upstream": self.url,
                "cycles": self.tracker.cycles,
                "tracked_series": len(self.tracker),
                "threshold": self.tracker.threshold,
                "start_stale": self.tracker.start_stale,
                "last_live": last_result.live if last_result else None,
                "last_stale": last_result.stale if last_result else None,
            }
