from dataclasses import dataclass, field
from typing import Callable

from nodeharness.errors import NodeConfigurationError
from nodeharness.process import ProcessOption
from nodeharness.security import CertificateAuthority


@dataclass(slots=True)
class SchedulerOptions:
    id: str
    log_level: str = "info"
    listen_address: str = "localhost"
    replica_count: int = 1
    namespace: str = "default"
    peer_app_id: str = "dapr-scheduler"
    port: int | None = None
    healthz_port: int | None = None
    metrics_port: int | None = None
    initial_cluster: str | None = None
    etcd_client_ports: list[str] | None = None
    data_dir: str | None = None
    sentry: CertificateAuthority | None = None
    process_options: list[ProcessOption] = field(default_factory=list)


SchedulerOption = Callable[[SchedulerOptions], None]


def with_log_level(log_level: str) -> SchedulerOption:
    def apply(options: SchedulerOptions):
        options.log_level = log_level

    return apply


def with_id(scheduler_id: str) -> SchedulerOption:
    def apply(options: SchedulerOptions):
        options.id = scheduler_id

    return apply


def with_replica_count(replica_count: int) -> SchedulerOption:
    if replica_count < 0:
        raise NodeConfigurationError(
            f"Err. - replica count must not be negative, got {replica_count}"
        )

    def apply(options: SchedulerOptions):
        options.replica_count = replica_count

    return apply


def with_port(port: int) -> SchedulerOption:
    def apply(options: SchedulerOptions):
        options.port = port

    return apply


def with_healthz_port(port: int) -> SchedulerOption:
    def apply(options: SchedulerOptions):
        options.healthz_port = port

    return apply


def with_metrics_port(port: int) -> SchedulerOption:
    def apply(options: SchedulerOptions):
        options.metrics_port = port

    return apply


def with_initial_cluster(initial_cluster: str) -> SchedulerOption:
    def apply(options: SchedulerOptions):
        options.initial_cluster = initial_cluster

    return apply


def with_etcd_client_ports(*client_ports: str) -> SchedulerOption:
    def apply(options: SchedulerOptions):
        options.etcd_client_ports = list(client_ports)

    return apply


def with_data_dir(data_dir: str) -> SchedulerOption:
    def apply(options: SchedulerOptions):
        options.data_dir = data_dir

    return apply


def with_namespace(namespace: str) -> SchedulerOption:
    def apply(options: SchedulerOptions):
        options.namespace = namespace

    return apply


def with_listen_address(listen_address: str) -> SchedulerOption:
    def apply(options: SchedulerOptions):
        options.listen_address = listen_address

    return apply


def with_sentry(sentry: CertificateAuthority) -> SchedulerOption:
    def apply(options: SchedulerOptions):
        options.sentry = sentry

    return apply


def with_peer_app_id(app_id: str) -> SchedulerOption:
    def apply(options: SchedulerOptions):
        options.peer_app_id = app_id

    return apply


def with_process_options(*process_options: ProcessOption) -> SchedulerOption:
    def apply(options: SchedulerOptions):
        options.process_options.extend(process_options)

    return apply
