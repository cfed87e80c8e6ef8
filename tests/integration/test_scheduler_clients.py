import asyncio
import time

import grpc
import pytest

from nodeharness.env import Env
from nodeharness.errors import NodeTransportError
from nodeharness.scheduler import Scheduler, with_peer_app_id, with_port, with_sentry
from nodeharness.scope import TestScope
from nodeharness.security import LocalCertificateAuthority


ECHO_METHOD = "/nodeharness.test.Echo/Echo"


class EchoStub:
    def __init__(self, channel: grpc.aio.Channel) -> None:
        self.echo = channel.unary_unary(ECHO_METHOD)


def refresh_tasks() -> list[asyncio.Task]:
    return [
        task
        for task in asyncio.all_tasks()
        if task.get_coro().__qualname__ == "SecurityProvider.run"
    ]


class TestSchedulerClient:
    @pytest.mark.asyncio
    async def test_plain_client(
        self,
        test_scope: TestScope,
        echo_server: int,
    ):
        scheduler = Scheduler(
            test_scope,
            with_port(echo_server),
            env=Env(NODE_HARNESS_DIAL_TIMEOUT="5s"),
        )

        channel = await scheduler.client()

        assert await channel.unary_unary(ECHO_METHOD)(b"ping") == b"ping"

    @pytest.mark.asyncio
    async def test_plain_client_with_stub(
        self,
        test_scope: TestScope,
        echo_server: int,
    ):
        scheduler = Scheduler(
            test_scope,
            with_port(echo_server),
            env=Env(NODE_HARNESS_DIAL_TIMEOUT="5s"),
        )

        stub = await scheduler.client(EchoStub)

        assert await stub.echo(b"pong") == b"pong"

    @pytest.mark.asyncio
    async def test_dial_to_a_stopped_node_fails_within_the_dial_timeout(
        self,
        test_scope: TestScope,
    ):
        scheduler = Scheduler(
            test_scope,
            env=Env(NODE_HARNESS_DIAL_TIMEOUT="500ms"),
        )

        started = time.monotonic()
        with pytest.raises(NodeTransportError, match=scheduler.address):
            await scheduler.client()

        assert time.monotonic() - started < 5

class TestSchedulerMTLSClient:
    @pytest.mark.asyncio
    async def test_mtls_client(
        self,
        test_scope: TestScope,
        certificate_authority: LocalCertificateAuthority,
        mtls_echo_server: int,
    ):
        scheduler = Scheduler(
            test_scope,
            with_port(mtls_echo_server),
            with_sentry(certificate_authority),
            env=Env(NODE_HARNESS_DIAL_TIMEOUT="5s"),
        )

        stub = await scheduler.client_mtls("myapp", EchoStub)

        assert await stub.echo(b"secure ping") == b"secure ping"

    @pytest.mark.asyncio
    async def test_teardown_drains_the_refresh_task(
        self,
        certificate_authority: LocalCertificateAuthority,
        mtls_echo_server: int,
    ):
        scope = TestScope()
        scheduler = Scheduler(
            scope,
            with_port(mtls_echo_server),
            with_sentry(certificate_authority),
            env=Env(NODE_HARNESS_DIAL_TIMEOUT="5s"),
        )

        await scheduler.client_mtls("myapp")

        assert len(refresh_tasks()) == 1

        await scope.close()

        assert refresh_tasks() == []

    @pytest.mark.asyncio
    async def test_unexpected_peer_identity_is_rejected(
        self,
        test_scope: TestScope,
        certificate_authority: LocalCertificateAuthority,
        mtls_echo_server: int,
    ):
        scheduler = Scheduler(
            test_scope,
            with_port(mtls_echo_server),
            with_sentry(certificate_authority),
            with_peer_app_id("impostor"),
            env=Env(NODE_HARNESS_DIAL_TIMEOUT="5s"),
        )

        with pytest.raises(NodeTransportError, match="expected spiffe://localhost/ns/default/impostor"):
            await scheduler.client_mtls("myapp")

    @pytest.mark.asyncio
    async def test_untrusted_peer_is_rejected(
        self,
        test_scope: TestScope,
        mtls_echo_server: int,
    ):
        scheduler = Scheduler(
            test_scope,
            with_port(mtls_echo_server),
            with_sentry(LocalCertificateAuthority()),
            env=Env(NODE_HARNESS_DIAL_TIMEOUT="5s"),
        )

        with pytest.raises(NodeTransportError, match="handshake"):
            await scheduler.client_mtls("myapp")
