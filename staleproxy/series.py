"""Identity of a single time series across scrapes."""
from dataclasses import dataclass


@dataclass(frozen=True)
class SeriesIdentity:
    """A time series keyed by metric name and its verbatim label text."""
    name: str
    labels: str

    def render(self) -> str:
        """Return the series as it appears on a sample line."""
        if self.labels:
            return f"{self.name}{{{self.labels}}}"
        return self.name


def series_identity(family_name: str, label_text: str) -> SeriesIdentity:
    """Build the staleness key for a series.

    Label text is compared verbatim, so the same labels in a different
    order are a different series.
    """
    return SeriesIdentity(family_name, label_text)
