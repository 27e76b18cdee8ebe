"""Parser for the Prometheus text exposition format."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional
import logging
import re

logger = logging.getLogger(__name__)


METRIC_NAME = r"[a-zA-Z_:][a-zA-Z0-9_:]*"
SAMPLE_VALUE = r"[+-]?Inf|NaN|[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?"

SAMPLE_PATTERN = re.compile(
    rf"^({METRIC_NAME})(?:\{{([^}}]*)\}})? ({SAMPLE_VALUE})(?: (-?\d+))?$"
)
TYPE_PATTERN = re.compile(rf"^# TYPE ({METRIC_NAME}) (\S+)$")
HELP_PATTERN = re.compile(rf"^# HELP ({METRIC_NAME})(?: (.*))?$")


class MetricType(str, Enum):
    """Declared type of a metric family."""
    HISTOGRAM = "histogram"  # not supported
    SUMMARY = "summary"  # not supported
    UNTYPED = "untyped"
    COUNTER = "counter"
    GAUGE = "gauge"

    @property
    def supported(self) -> bool:
        return self not in (MetricType.HISTOGRAM, MetricType.SUMMARY)

    @classmethod
    def from_keyword(cls, keyword: str) -> "MetricType":
        """Resolve a TYPE keyword, falling back to untyped."""
        try:
            return cls(keyword)
        except ValueError:
            logger.debug(f"Unknown metric type '{keyword}', treating as untyped")
            return cls.UNTYPED


@dataclass
class Series:
    """One sample of a family, keyed by its verbatim label text."""
    labels: str
    value: float
    timestamp: Optional[int] = None


@dataclass
class MetricFamily:
    """A metric name with its metadata and the series seen in one scrape."""
    name: str
    type: MetricType = MetricType.UNTYPED
    help: str = ""
    series: Dict[str, Series] = field(default_factory=dict)


class LineKind(Enum):
    SAMPLE = "sample"
    TYPE = "type"
    HELP = "help"
    UNRECOGNIZED = "unrecognized"


@dataclass
class ParsedLine:
    """Result of classifying a single exposition line."""
    kind: LineKind
    name: str = ""
    labels: str = ""
    value: float = 0.0
    timestamp: Optional[int] = None
    type: MetricType = MetricType.UNTYPED
    help: str = ""


UNRECOGNIZED = ParsedLine(LineKind.UNRECOGNIZED)


def classify_line(line: str) -> ParsedLine:
    """Match a line against the sample, TYPE and HELP grammars.

    A line matches at most one of them. Lines that match none, or samples
    whose value does not parse as a float, come back as UNRECOGNIZED.
    """
    if line.startswith("#"):
        match = TYPE_PATTERN.match(line)
        if match:
            return ParsedLine(
                LineKind.TYPE,
                name=match.group(1),
                type=MetricType.from_keyword(match.group(2)),
            )

        match = HELP_PATTERN.match(line)
        if match:
            return ParsedLine(LineKind.HELP, name=match.group(1), help=match.group(2) or "")

        return UNRECOGNIZED

    match = SAMPLE_PATTERN.match(line)
    if not match:
        return UNRECOGNIZED

    name, labels, raw_value, raw_timestamp = match.groups()
    try:
        value = float(raw_value)
    except ValueError:
        return UNRECOGNIZED

    return ParsedLine(
        LineKind.SAMPLE,
        name=name,
        labels=labels or "",
        value=value,
        timestamp=int(raw_timestamp) if raw_timestamp is not None else None,
    )


def parse_exposition(text: str) -> Dict[str, MetricFamily]:
    """
    Parse an exposition payload into metric families.

    Sample, TYPE and HELP lines of a family may appear in any order.
    Malformed lines are skipped; parsing never fails as a whole.

    Args:
        text: Raw body of an upstream scrape

    Returns:
        Families keyed by name, in order of first appearance
    """
    families: Dict[str, MetricFamily] = {}
    skipped = 0

    for line in text.splitlines():
        parsed = classify_line(line)

        if parsed.kind is LineKind.UNRECOGNIZED:
            if line and not line.startswith("#"):
                skipped += 1
            continue

        family = families.get(parsed.name)
        if family is None:
            family = MetricFamily(parsed.name)
            families[parsed.name] = family

        if parsed.kind is LineKind.SAMPLE:
            family.series[parsed.labels] = Series(parsed.labels, parsed.value, parsed.timestamp)
        elif parsed.kind is LineKind.TYPE:
            family.type = parsed.type
        else:
            family.help = parsed.help

    if skipped:
        logger.debug(f"Skipped {skipped} malformed lines")

    return families
