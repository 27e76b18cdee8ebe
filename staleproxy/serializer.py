"""Render live series back into exposition text."""
from typing import List, Mapping, Set
import math

from staleproxy.parser import MetricFamily
from staleproxy.series import SeriesIdentity, series_identity
from staleproxy.tracker import SeriesState

# Sample families that belong to a histogram or summary declared under the base name
MULTI_SAMPLE_SUFFIXES = ("_bucket", "_sum", "_count", "_created")


def format_value(value: float) -> str:
    """Format a sample value so that parsing it yields the same float."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"

    text = repr(value)
    if text.endswith(".0"):
        return text[:-2]
    return text


def unsupported_names(families: Mapping[str, MetricFamily]) -> Set[str]:
    """Names of every family that is part of a histogram or summary."""
    names = set()
    for name, family in families.items():
        if family.type.supported:
            continue
        names.add(name)
        names.update(name + suffix for suffix in MULTI_SAMPLE_SUFFIXES)
    return names


def render(
    families: Mapping[str, MetricFamily],
    classification: Mapping[SeriesIdentity, SeriesState]
) -> str:
    """
    Render families, keeping only LIVE series.

    A family's HELP and TYPE lines are written only when at least one of
    its series is live. Histogram and summary families never appear.
    Series missing from the classification are treated as stale.

    Args:
        families: Families parsed from the current scrape
        classification: State of each series for this scrape

    Returns:
        Exposition text, newline terminated unless empty
    """
    excluded = unsupported_names(families)
    lines: List[str] = []

    for name, family in families.items():
        if name in excluded:
            continue

        samples = []
        for labels, series in family.series.items():
            state = classification.get(series_identity(name, labels), SeriesState.STALE)
            if state != SeriesState.LIVE:
                continue
            if labels:
                samples.append(f"{name}{{{labels}}} {format_value(series.value)}")
            else:
                samples.append(f"{name} {format_value(series.value)}")

        if not samples:
            continue

        lines.append(f"# HELP {name} {family.help}")
        lines.append(f"# TYPE {name} {family.type.value}")
        lines.extend(samples)

    if not lines:
        return ""
    return "\n".join(lines) + "\n"
