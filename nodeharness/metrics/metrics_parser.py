"""
Normalization of Prometheus text exposition bodies into flat maps.

Keys are built by string concatenation and compared verbatim by callers:

    counter/gauge   <name>|<label>:<value>...
    histogram       <name>_bucket|<label>:<value>...|le:<int bound>
                    <name>_count|<label>:<value>...
                    <name>_sum|<label>:<value>...

Counters are keyed by the name on their "# TYPE" line, with or without a
"_total" suffix. Every histogram series carries _count and _sum, zero when
the exposition omits them. The "+Inf" bound is kept verbatim.

Labels keep the order in which the exposition declared them.
"""

import math
from typing import Iterable

from prometheus_client.metrics_core import Metric
from prometheus_client.parser import text_string_to_metric_families
from prometheus_client.samples import Sample

from nodeharness.errors import MetricsParseError

MetricsSnapshot = dict[str, float]


def parse_metrics(text: str) -> MetricsSnapshot:
    try:
        families = list(text_string_to_metric_families(text))

    except (ValueError, IndexError) as err:
        raise MetricsParseError(
            f"Err. - failed to parse metrics exposition - {str(err)}"
        ) from err

    return normalize_metric_families(
        families,
        counter_names=exposed_counter_names(text),
    )


def exposed_counter_names(text: str) -> set[str]:
    """
    Counter names as written on their "# TYPE" lines. The parser strips
    or appends "_total" to counter families, so the exposed name is only
    recoverable from the raw text.
    """

    names: set[str] = set()
    for line in text.splitlines():
        parts = line.strip().split(None, 3)
        if len(parts) == 4 and parts[:2] == ["#", "TYPE"] and parts[3].strip() == "counter":
            names.add(parts[2])

    return names


def normalize_metric_families(
    families: Iterable[Metric],
    counter_names: set[str] | None = None,
) -> MetricsSnapshot:
    metrics: MetricsSnapshot = {}

    for family in families:
        match family.type:
            case "counter":
                name = counter_name(family, counter_names)
                for sample in family.samples:
                    if sample.name == family.name + "_created":
                        continue

                    metrics[name + format_labels(sample.labels)] = sample.value

            case "gauge":
                for sample in family.samples:
                    metrics[sample.name + format_labels(sample.labels)] = sample.value

            case "histogram":
                series: dict[str, None] = {}
                for sample in family.samples:
                    labels = {
                        label: value
                        for label, value in sample.labels.items()
                        if label != "le"
                    }
                    series[format_labels(labels)] = None

                    if sample.name == family.name + "_bucket":
                        metrics[bucket_key(sample)] = sample.value

                    elif sample.name in (family.name + "_count", family.name + "_sum"):
                        metrics[sample.name + format_labels(sample.labels)] = sample.value

                for labels in series:
                    metrics.setdefault(family.name + "_count" + labels, 0)
                    metrics.setdefault(family.name + "_sum" + labels, 0)

            case _:
                continue

    return metrics


def counter_name(family: Metric, counter_names: set[str] | None) -> str:
    total = family.name + "_total"
    if counter_names is None or total in counter_names:
        return total

    return family.name


def format_labels(labels: dict[str, str]) -> str:
    return "".join(
        f"|{name}:{value}" for name, value in labels.items()
    )


def bucket_key(sample: Sample) -> str:
    labels = {
        name: value for name, value in sample.labels.items() if name != "le"
    }

    return sample.name + format_labels(labels) + "|le:" + format_bound(sample.labels.get("le", "+Inf"))


def format_bound(bound: str) -> str:
    upper_bound = float(bound)
    if math.isinf(upper_bound) or math.isnan(upper_bound):
        return bound

    return str(int(upper_bound))
