from .cluster_topology import (
    parse_cluster_topology as parse_cluster_topology,
    parse_initial_cluster as parse_initial_cluster,
)
from .run_state import RunState as RunState
from .scheduler import Scheduler as Scheduler
from .scheduler_options import (
    SchedulerOption as SchedulerOption,
    SchedulerOptions as SchedulerOptions,
    with_data_dir as with_data_dir,
    with_etcd_client_ports as with_etcd_client_ports,
    with_healthz_port as with_healthz_port,
    with_id as with_id,
    with_initial_cluster as with_initial_cluster,
    with_listen_address as with_listen_address,
    with_log_level as with_log_level,
    with_metrics_port as with_metrics_port,
    with_namespace as with_namespace,
    with_peer_app_id as with_peer_app_id,
    with_port as with_port,
    with_process_options as with_process_options,
    with_replica_count as with_replica_count,
    with_sentry as with_sentry,
)
