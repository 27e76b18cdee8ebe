"""Tests for rendering filtered exposition text."""
import math

import pytest

from staleproxy.parser import parse_exposition
from staleproxy.serializer import format_value, render
from staleproxy.series import series_identity
from staleproxy.tracker import SeriesState, StalenessTracker

LIVE = SeriesState.LIVE
STALE = SeriesState.STALE

PAYLOAD = """\
# HELP temp CPU temperature
# TYPE temp gauge
temp{cpu="0"} 41
temp{cpu="1"} 43.5
# HELP up Target is up
# TYPE up untyped
up 1
"""


def all_live(families):
    return {
        series_identity(name, labels): LIVE
        for name, family in families.items()
        for labels in family.series
    }


@pytest.mark.parametrize("value,expected", [
    (6.0, "6"),
    (43.5, "43.5"),
    (-0.25, "-0.25"),
    (1e-05, "1e-05"),
    (1.5e+16, "1.5e+16"),
    (math.inf, "+Inf"),
    (-math.inf, "-Inf"),
    (math.nan, "NaN"),
])
def test_format_value(value, expected):
    assert format_value(value) == expected


def test_format_value_round_trips_precision():
    for value in [0.1 + 0.2, 1 / 3, 123456789.123456789, 2 ** 53 + 0.0]:
        assert float(format_value(value)) == value


def test_render_all_live_reproduces_payload():
    families = parse_exposition(PAYLOAD)
    assert render(families, all_live(families)) == PAYLOAD


def test_render_drops_stale_series():
    families = parse_exposition(PAYLOAD)
    classification = all_live(families)
    classification[series_identity("temp", 'cpu="0"')] = STALE

    output = render(families, classification)
    assert 'temp{cpu="0"}' not in output
    assert 'temp{cpu="1"} 43.5' in output
    assert "# TYPE temp gauge" in output


def test_family_with_only_stale_series_has_no_preamble():
    families = parse_exposition(PAYLOAD)
    classification = all_live(families)
    classification[series_identity("temp", 'cpu="0"')] = STALE
    classification[series_identity("temp", 'cpu="1"')] = STALE

    output = render(families, classification)
    assert "temp" not in output
    assert output == "# HELP up Target is up\n# TYPE up untyped\nup 1\n"


def test_unclassified_series_are_not_emitted():
    families = parse_exposition(PAYLOAD)
    assert render(families, {}) == ""


def test_histogram_and_summary_are_excluded():
    text = """\
# HELP rpc_duration_seconds RPC latency
# TYPE rpc_duration_seconds summary
rpc_duration_seconds{quantile="0.5"} 0.05
rpc_duration_seconds_sum 17.5
rpc_duration_seconds_count 350
# TYPE req_latency histogram
req_latency_bucket{le="0.1"} 3
req_latency_bucket{le="+Inf"} 5
req_latency_sum 0.4
req_latency_count 5
# TYPE jobs_total counter
jobs_total 4
"""
    families = parse_exposition(text)
    output = render(families, all_live(families))

    assert output == "# HELP jobs_total \n# TYPE jobs_total counter\njobs_total 4\n"


def test_histogram_declared_after_its_samples_is_excluded():
    text = 'lat_bucket{le="1"} 2\nlat_count 2\nlat_sum 0.3\n# TYPE lat histogram\n'
    families = parse_exposition(text)
    assert render(families, all_live(families)) == ""


def test_render_is_idempotent():
    text = """\
# TYPE disk_free gauge
disk_free{dev="sda",mount="/"} 1.2e+10
disk_free{dev="sdb",mount="/data"} -Inf
# HELP ratio
ratio NaN
errors_total 0.0001 1700000000
"""
    families = parse_exposition(text)
    classification = all_live(families)
    first = render(families, classification)

    reparsed = parse_exposition(first)
    assert render(reparsed, classification) == first


def test_scenario_start_stale_then_change():
    tracker = StalenessTracker(threshold=240, start_stale=True)

    def scrape(value):
        families = parse_exposition(
            f'# HELP foo desc\n# TYPE foo gauge\nfoo{{a="1"}} {value}\n'
        )
        return render(families, tracker.update(families))

    assert scrape(5) == ""
    assert scrape(5) == ""
    assert scrape(6) == '# HELP foo desc\n# TYPE foo gauge\nfoo{a="1"} 6\n'
