import asyncio
import os
import uuid
from typing import Any, Callable, TypeVar

import aiohttp
import grpc

from nodeharness.clients import dial, http_session
from nodeharness.env import Env, TimeParser, load_env
from nodeharness.errors import (
    NodeConfigurationError,
    NodeLifecycleError,
    NodeReadinessError,
    NodeTransportError,
    SecuritySessionError,
)
from nodeharness.logging import Logger, LoggingConfig
from nodeharness.logging.harness_logging_models import (
    NodeDebug,
    NodeError,
    NodeInfo,
    NodeTrace,
)
from nodeharness.metrics import MetricsSnapshot, parse_metrics
from nodeharness.ports import Ports
from nodeharness.process import Process, with_env_vars
from nodeharness.scope import TestScope
from nodeharness.security import (
    CertificateAuthority,
    SecurityOptions,
    SecurityProvider,
    SecuritySession,
    SpiffeID,
)

from .cluster_topology import parse_cluster_topology, parse_initial_cluster
from .run_state import RunState
from .scheduler_options import SchedulerOption, SchedulerOptions

T = TypeVar("T")


class Scheduler:
    """
    One scheduler cluster member driven as an external process.

    Construction reserves five ports (initial cluster peer, service,
    healthz, metrics and etcd client, in that order) and assembles the
    command line. The ports stay held until run(), and cleanup() is
    registered on the scope so the process never outlives the test.
    """

    def __init__(
        self,
        scope: TestScope,
        *options: SchedulerOption,
        env: Env | None = None,
        logger: Logger | None = None,
    ) -> None:
        if env is None:
            env = load_env(Env)

        self._scope = scope
        self._env = env

        self._ports = Ports.reserve(scope, 5)
        peer_port = self._ports.port()
        service_port = self._ports.port()
        healthz_port = self._ports.port()
        metrics_port = self._ports.port()
        etcd_client_port = self._ports.port()

        self._options = SchedulerOptions(id=f"{uuid.uuid1()}-0")
        for option in options:
            option(self._options)

        opts = self._options
        if opts.port is None:
            opts.port = service_port

        if opts.healthz_port is None:
            opts.healthz_port = healthz_port

        if opts.metrics_port is None:
            opts.metrics_port = metrics_port

        if opts.initial_cluster is None:
            opts.initial_cluster = f"{opts.id}=http://127.0.0.1:{peer_port}"

        if opts.etcd_client_ports is None:
            opts.etcd_client_ports = [f"{opts.id}={etcd_client_port}"]

        self._validate()

        self._etcd_client_ports = parse_cluster_topology(opts.etcd_client_ports)

        if opts.data_dir is None:
            opts.data_dir = scope.temp_dir()
            os.chmod(opts.data_dir, 0o700)

        args = [
            f"--log-level={opts.log_level}",
            f"--id={opts.id}",
            f"--replica-count={opts.replica_count}",
            f"--port={opts.port}",
            f"--healthz-port={opts.healthz_port}",
            f"--metrics-port={opts.metrics_port}",
            f"--initial-cluster={opts.initial_cluster}",
            f"--etcd-data-dir={opts.data_dir}",
            f"--etcd-client-ports={','.join(opts.etcd_client_ports)}",
            f"--listen-address={opts.listen_address}",
        ]

        self._trust_anchors_path: str | None = None
        if opts.sentry is not None:
            self._trust_anchors_path = os.path.join(scope.temp_dir(), "ca.pem")
            with open(
                os.open(
                    self._trust_anchors_path,
                    os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
                    0o600,
                ),
                "wb",
            ) as trust_anchors_file:
                trust_anchors_file.write(opts.sentry.trust_anchors)

            args.extend([
                "--tls-enabled=true",
                f"--sentry-address={opts.sentry.address}",
                f"--trust-anchors-file={self._trust_anchors_path}",
                f"--trust-domain={opts.sentry.trust_domain}",
            ])

        if logger is None:
            logger = Logger()

        LoggingConfig().update(
            log_directory=env.NODE_HARNESS_LOGS_DIRECTORY,
            log_level=env.NODE_HARNESS_LOG_LEVEL,
            log_output=env.NODE_HARNESS_LOG_OUTPUT,
        )

        self._logger = logger
        self._logger.configure(
            name="scheduler",
            path=self._log_path(),
            template="{timestamp} - {level} - {thread_id} - {filename}:{function_name}.{line_number} - {node_id}@{namespace}:{port} - {message}",
            models={
                "trace": (NodeTrace, self._log_defaults()),
                "debug": (NodeDebug, self._log_defaults()),
                "info": (NodeInfo, self._log_defaults()),
                "error": (NodeError, self._log_defaults()),
            },
        )

        self._process = Process(
            scope,
            "scheduler",
            args,
            *opts.process_options,
            with_env_vars("NAMESPACE", opts.namespace),
            env=env,
            logger=logger,
        )

        self._health_timeout = TimeParser(env.NODE_HARNESS_HEALTH_TIMEOUT).time
        self._health_poll_interval = TimeParser(env.NODE_HARNESS_HEALTH_POLL_INTERVAL).time
        self._dial_timeout = TimeParser(env.NODE_HARNESS_DIAL_TIMEOUT).time

        self._running = RunState()
        self._session: aiohttp.ClientSession | None = None

        scope.add_cleanup(self.cleanup)

    @property
    def id(self) -> str:
        return self._options.id

    @property
    def namespace(self) -> str:
        return self._options.namespace

    @property
    def port(self) -> int:
        return self._options.port

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self._options.port}"

    @property
    def healthz_port(self) -> int:
        return self._options.healthz_port

    @property
    def metrics_port(self) -> int:
        return self._options.metrics_port

    @property
    def metrics_address(self) -> str:
        return f"127.0.0.1:{self._options.metrics_port}"

    @property
    def initial_cluster(self) -> str:
        return self._options.initial_cluster

    @property
    def etcd_client_port(self) -> int | None:
        return self._etcd_client_ports.get(self._options.id)

    @property
    def etcd_client_ports(self) -> dict[str, int]:
        return dict(self._etcd_client_ports)

    @property
    def data_dir(self) -> str:
        return self._options.data_dir

    @property
    def sentry(self) -> CertificateAuthority | None:
        return self._options.sentry

    @property
    def process(self) -> Process:
        return self._process

    @property
    def running(self) -> bool:
        return self._running.value

    async def run(self):
        if not self._running.compare_and_swap(False, True):
            raise NodeLifecycleError(
                f"Err. - scheduler {self.id} at {self.address} is already running"
            )

        self._ports.free()

        async with self._logger.context(name="scheduler") as ctx:
            await ctx.log_prepared(
                f"Starting scheduler {self.id} at {self.address}",
                name="info",
            )

        await self._process.run()

    async def cleanup(self):
        if not self._running.compare_and_swap(True, False):
            return

        async with self._logger.context(name="scheduler") as ctx:
            await ctx.log_prepared(
                f"Stopping scheduler {self.id} at {self.address}",
                name="info",
            )

        await self._process.cleanup()

    async def wait_until_running(self):
        if not self._running.value:
            raise NodeLifecycleError(
                f"Err. - scheduler {self.id} at {self.address} was never started"
            )

        try:
            await asyncio.wait_for(
                self._poll_healthz(),
                timeout=self._health_timeout,
            )

        except asyncio.TimeoutError as err:
            async with self._logger.context(name="scheduler") as ctx:
                await ctx.log_prepared(
                    f"Scheduler {self.id} did not report healthy within {self._health_timeout}s",
                    name="error",
                )

            raise NodeReadinessError(
                f"Err. - scheduler {self.id} healthz on 127.0.0.1:{self.healthz_port} did not return 200 within {self._health_timeout}s"
            ) from err

        async with self._logger.context(name="scheduler") as ctx:
            await ctx.log_prepared(
                f"Scheduler {self.id} is healthy",
                name="debug",
            )

    async def client(
        self,
        stub: Callable[[grpc.aio.Channel], T] | None = None,
    ) -> grpc.aio.Channel | T:
        channel = await dial(
            self._scope,
            self.address,
            env=self._env,
        )

        if stub is None:
            return channel

        return stub(channel)

    async def client_mtls(
        self,
        app_id: str,
        stub: Callable[[grpc.aio.Channel], T] | None = None,
    ) -> grpc.aio.Channel | T:
        sentry = self._options.sentry
        if sentry is None:
            raise NodeConfigurationError(
                f"Err. - scheduler {self.id} has no sentry configured, cannot create an mTLS client for {app_id}"
            )

        provider = SecurityProvider(
            SecurityOptions(
                sentry_address=f"localhost:{sentry.port}",
                control_plane_trust_domain=sentry.trust_domain,
                control_plane_namespace=sentry.namespace,
                trust_anchors_file=self._trust_anchors_path,
                app_id=app_id,
                authority=sentry,
                namespace=self.namespace,
            ),
            env=self._env,
            logger=self._logger,
        )

        session = SecuritySession(provider)
        session.start()

        async def stop_session():
            session.cancel()
            await session.join()

        self._scope.add_cleanup(stop_session)

        try:
            handler = await asyncio.wait_for(
                session.handler(),
                timeout=self._dial_timeout,
            )

        except asyncio.TimeoutError as err:
            raise SecuritySessionError(
                f"Err. - no credentials issued for {app_id} within {self._dial_timeout}s"
            ) from err

        peer_id = SpiffeID.from_segments(
            handler.control_plane_trust_domain,
            "ns",
            self.namespace,
            self._options.peer_app_id,
        )

        credentials, channel_options = await handler.grpc_dial_options(
            "127.0.0.1",
            self.port,
            peer_id,
            timeout=self._dial_timeout,
        )

        channel = await dial(
            self._scope,
            self.address,
            env=self._env,
            credentials=credentials,
            options=channel_options,
        )

        async with self._logger.context(name="scheduler") as ctx:
            await ctx.log_prepared(
                f"Opened mTLS channel to {peer_id} at {self.address} as {provider.spiffe_id}",
                name="debug",
            )

        if stub is None:
            return channel

        return stub(channel)

    async def metrics(self) -> MetricsSnapshot:
        url = f"http://{self.metrics_address}/metrics"

        try:
            async with self._http_session().get(url) as response:
                if response.status != 200:
                    raise NodeTransportError(
                        f"Err. - scheduler {self.id} metrics at {url} returned status {response.status}"
                    )

                body = await response.text()

        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            raise NodeTransportError(
                f"Err. - failed to scrape scheduler {self.id} metrics at {url} - {str(err)}"
            ) from err

        return parse_metrics(body)

    async def _poll_healthz(self):
        url = f"http://127.0.0.1:{self.healthz_port}/healthz"
        session = self._http_session()

        while True:
            try:
                async with session.get(url) as response:
                    if response.status == 200:
                        return

                    outcome = f"status {response.status}"

            except (aiohttp.ClientError, asyncio.TimeoutError) as err:
                outcome = str(err) or err.__class__.__name__

            async with self._logger.context(name="scheduler") as ctx:
                await ctx.log_prepared(
                    f"Healthz poll of {url} not ready - {outcome}",
                    name="trace",
                )

            await asyncio.sleep(self._health_poll_interval)

    def _http_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = http_session(self._scope, self._env)

        return self._session

    def _validate(self):
        opts = self._options

        peer_ids = [
            peer_id for peer_id, _ in parse_initial_cluster(opts.initial_cluster)
        ]
        if peer_ids.count(opts.id) != 1:
            raise NodeConfigurationError(
                f"Err. - scheduler id {opts.id} must appear exactly once in initial cluster {opts.initial_cluster}"
            )

        service_ports = [opts.port, opts.healthz_port, opts.metrics_port]
        if len(set(service_ports)) != len(service_ports):
            raise NodeConfigurationError(
                f"Err. - scheduler {opts.id} ports must be distinct, got port={opts.port} healthz={opts.healthz_port} metrics={opts.metrics_port}"
            )

    def _log_defaults(self) -> dict[str, Any]:
        return {
            "node_id": self._options.id,
            "namespace": self._options.namespace,
            "port": self._options.port,
        }

    def _log_path(self) -> str | None:
        if self._env.NODE_HARNESS_LOGS_DIRECTORY:
            return os.path.join(
                self._env.NODE_HARNESS_LOGS_DIRECTORY,
                "nodeharness.scheduler.log.json",
            )
