import asyncio
import json
import pathlib
import time
from typing import Callable

import pytest

from nodeharness.env import Env
from nodeharness.errors import (
    MetricsParseError,
    NodeLifecycleError,
    NodeReadinessError,
    NodeTransportError,
)
from nodeharness.process import with_env_vars
from nodeharness.scheduler import Scheduler, with_namespace, with_process_options
from nodeharness.scope import TestScope


METRICS_BODY = """\
# HELP dapr_scheduler_jobs_created_total Jobs created.
# TYPE dapr_scheduler_jobs_created_total counter
dapr_scheduler_jobs_created_total{app_id="myapp"} 4
# TYPE dapr_scheduler_sidecars_connected gauge
dapr_scheduler_sidecars_connected 2
# TYPE h histogram
h_bucket{le="10"} 3
h_bucket{le="+Inf"} 4
h_sum 12.5
h_count 4
"""


def fake_scheduler_options(**settings: str):
    pairs: list[str] = []
    for name, value in settings.items():
        pairs.extend([f"FAKE_SCHEDULER_{name.upper()}", value])

    return with_process_options(with_env_vars(*pairs))


class TestSchedulerLifecycle:
    @pytest.mark.asyncio
    async def test_run_and_wait_until_running(
        self,
        test_scope: TestScope,
        scheduler_env: Env,
        record_path: str,
        read_record: Callable[[], dict],
    ):
        scheduler = Scheduler(
            test_scope,
            with_namespace("prod"),
            fake_scheduler_options(record=record_path),
            env=scheduler_env,
        )

        await scheduler.run()
        await scheduler.wait_until_running()

        record = read_record()

        assert scheduler.running
        assert record["namespace"] == "prod"
        assert record["args"] == scheduler.process.args

    @pytest.mark.asyncio
    async def test_wait_retries_until_healthy(
        self,
        test_scope: TestScope,
        scheduler_env: Env,
    ):
        scheduler = Scheduler(
            test_scope,
            fake_scheduler_options(startup_delay="0.5"),
            env=scheduler_env,
        )

        await scheduler.run()
        await scheduler.wait_until_running()

        assert scheduler.running

    @pytest.mark.asyncio
    async def test_wait_times_out_when_never_healthy(
        self,
        test_scope: TestScope,
        fake_scheduler_path: str,
    ):
        scheduler = Scheduler(
            test_scope,
            fake_scheduler_options(healthz_status="503"),
            env=Env(
                NODE_HARNESS_SCHEDULER_PATH=fake_scheduler_path,
                NODE_HARNESS_HEALTH_TIMEOUT="500ms",
            ),
        )

        await scheduler.run()

        started = time.monotonic()
        with pytest.raises(NodeReadinessError):
            await scheduler.wait_until_running()

        assert time.monotonic() - started < 5

    @pytest.mark.asyncio
    async def test_unready_healthz_polls_are_traced(
        self,
        test_scope: TestScope,
        fake_scheduler_path: str,
        tmp_path: pathlib.Path,
    ):
        scheduler = Scheduler(
            test_scope,
            fake_scheduler_options(healthz_status="503"),
            env=Env(
                NODE_HARNESS_SCHEDULER_PATH=fake_scheduler_path,
                NODE_HARNESS_HEALTH_TIMEOUT="500ms",
                NODE_HARNESS_LOG_LEVEL="trace",
                NODE_HARNESS_LOGS_DIRECTORY=str(tmp_path),
            ),
        )

        await scheduler.run()

        with pytest.raises(NodeReadinessError):
            await scheduler.wait_until_running()

        log_path = tmp_path / "nodeharness.scheduler.log.json"
        entries = [
            json.loads(line)["entry"]
            for line in log_path.read_text().splitlines()
        ]

        traced = [entry for entry in entries if entry["level"] == "TRACE"]

        assert traced
        assert any("status 503" in entry["message"] for entry in traced)
        assert traced[0]["node_id"] == scheduler.id


    @pytest.mark.asyncio
    async def test_second_run_fails(
        self,
        test_scope: TestScope,
        scheduler_env: Env,
    ):
        scheduler = Scheduler(test_scope, env=scheduler_env)

        await scheduler.run()

        with pytest.raises(NodeLifecycleError):
            await scheduler.run()

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(
        self,
        test_scope: TestScope,
        scheduler_env: Env,
    ):
        scheduler = Scheduler(test_scope, env=scheduler_env)

        await scheduler.run()
        await scheduler.wait_until_running()

        await scheduler.cleanup()
        await scheduler.cleanup()

        assert scheduler.running is False
        assert scheduler.process.return_code == 0

    @pytest.mark.asyncio
    async def test_scope_close_stops_a_running_node(self, scheduler_env: Env):
        scope = TestScope()
        scheduler = Scheduler(scope, env=scheduler_env)

        await scheduler.run()
        await scheduler.wait_until_running()
        await scope.close()

        assert scheduler.running is False
        assert scheduler.process.return_code is not None


class TestSchedulerMetrics:
    @pytest.mark.asyncio
    async def test_scrape(
        self,
        test_scope: TestScope,
        scheduler_env: Env,
    ):
        scheduler = Scheduler(
            test_scope,
            fake_scheduler_options(metrics_body=METRICS_BODY),
            env=scheduler_env,
        )

        await scheduler.run()
        await scheduler.wait_until_running()

        metrics = await scheduler.metrics()

        assert metrics == {
            "dapr_scheduler_jobs_created_total|app_id:myapp": 4,
            "dapr_scheduler_sidecars_connected": 2,
            "h_bucket|le:10": 3,
            "h_bucket|le:+Inf": 4,
            "h_count": 4,
            "h_sum": 12.5,
        }

    @pytest.mark.asyncio
    async def test_every_scrape_is_fresh(
        self,
        test_scope: TestScope,
        scheduler_env: Env,
    ):
        scheduler = Scheduler(
            test_scope,
            fake_scheduler_options(metrics_body=METRICS_BODY),
            env=scheduler_env,
        )

        await scheduler.run()
        await scheduler.wait_until_running()

        first = await scheduler.metrics()
        first["h_count"] = 0

        assert (await scheduler.metrics())["h_count"] == 4

    @pytest.mark.asyncio
    async def test_non_200_status_fails(
        self,
        test_scope: TestScope,
        scheduler_env: Env,
    ):
        scheduler = Scheduler(
            test_scope,
            fake_scheduler_options(metrics_status="500"),
            env=scheduler_env,
        )

        await scheduler.run()
        await scheduler.wait_until_running()

        with pytest.raises(NodeTransportError, match="status 500") as raised:
            await scheduler.metrics()

        assert not isinstance(raised.value, MetricsParseError)

    @pytest.mark.asyncio
    async def test_malformed_body_fails(
        self,
        test_scope: TestScope,
        scheduler_env: Env,
    ):
        scheduler = Scheduler(
            test_scope,
            fake_scheduler_options(metrics_body="# TYPE x gauge\nx not_a_number\n"),
            env=scheduler_env,
        )

        await scheduler.run()
        await scheduler.wait_until_running()

        with pytest.raises(MetricsParseError):
            await scheduler.metrics()

    @pytest.mark.asyncio
    async def test_scrape_of_stopped_node_fails(
        self,
        test_scope: TestScope,
        scheduler_env: Env,
    ):
        scheduler = Scheduler(test_scope, env=scheduler_env)

        await scheduler.run()
        await scheduler.wait_until_running()
        await scheduler.cleanup()

        with pytest.raises(NodeTransportError):
            await asyncio.wait_for(scheduler.metrics(), timeout=10)
