from .metrics_parser import (
    MetricsSnapshot as MetricsSnapshot,
    bucket_key as bucket_key,
    exposed_counter_names as exposed_counter_names,
    format_labels as format_labels,
    normalize_metric_families as normalize_metric_families,
    parse_metrics as parse_metrics,
)
