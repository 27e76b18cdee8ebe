"""Per-series staleness bookkeeping."""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, Mapping, Optional
import logging

from staleproxy.parser import MetricFamily
from staleproxy.series import SeriesIdentity, series_identity

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 240

# Counter value of a record created under the start-live policy. The first
# observation increments it to 0, so the series is shown immediately.
FRESH = -1


class SeriesState(str, Enum):
    LIVE = "live"
    STALE = "stale"


@dataclass
class StalenessRecord:
    """Last known value of a series and how many scrapes it has not changed."""
    value: float
    unchanged: int
    last_seen: int = 0


class StalenessTracker:
    """
    Tracks consecutive unchanged scrapes for every series of one target.

    A series is STALE once its unchanged counter exceeds the threshold and
    LIVE otherwise. Any change in value resets the counter.
    """

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        start_stale: bool = True,
        evict_after: Optional[int] = None
    ):
        self.threshold = threshold
        self.start_stale = start_stale
        self.evict_after = evict_after
        self.cycles = 0
        self._records: Dict[SeriesIdentity, StalenessRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identity: SeriesIdentity) -> bool:
        return identity in self._records

    def __iter__(self) -> Iterator[SeriesIdentity]:
        return iter(self._records)

    def get(self, identity: SeriesIdentity) -> Optional[StalenessRecord]:
        return self._records.get(identity)

    def _initial_counter(self) -> int:
        return self.threshold if self.start_stale else FRESH

    def _state_for(self, record: StalenessRecord) -> SeriesState:
        if record.unchanged > self.threshold:
            return SeriesState.STALE
        return SeriesState.LIVE

    def observe(self, identity: SeriesIdentity, value: float) -> SeriesState:
        """Apply one observation of a series and return its state."""
        record = self._records.get(identity)
        if record is None:
            record = StalenessRecord(value, self._initial_counter())
            self._records[identity] = record

        record.last_seen = self.cycles
        if record.value != value:
            record.value = value
            record.unchanged = 0
        else:
            record.unchanged += 1

        return self._state_for(record)

    def classify(self, identity: SeriesIdentity) -> SeriesState:
        """Return the current state of a known series."""
        return self._state_for(self._records[identity])

    def update(self, families: Mapping[str, MetricFamily]) -> Dict[SeriesIdentity, SeriesState]:
        """
        Run one scrape cycle over freshly parsed families.

        Args:
            families: Result of parsing the current upstream payload

        Returns:
            State of every series present in the payload
        """
        self.cycles += 1
        classification: Dict[SeriesIdentity, SeriesState] = {}

        for name, family in families.items():
            for labels, series in family.series.items():
                identity = series_identity(name, labels)
                classification[identity] = self.observe(identity, series.value)

        if self.evict_after is not None:
            self._evict_absent()

        return classification

    def _evict_absent(self):
        """Drop records that have not been observed for too many cycles."""
        cutoff = self.cycles - self.evict_after
        absent = [
            identity for identity, record in self._records.items()
            if record.last_seen < cutoff
        ]
        for identity in absent:
            del self._records[identity]

        if absent:
            logger.debug(f"Evicted {len(absent)} series absent for more than {self.evict_after} scrapes")
