"""
Shared fixtures for the node harness tests.

Scheduler tests run against a fake scheduler binary: a small Python
script that parses the --flag=value arguments it is started with and
serves /healthz and /metrics on the requested ports until SIGTERM.
Its behavior is driven through environment variables so tests can set
it with process options.
"""

import json
import pathlib
import sys
from typing import AsyncGenerator, Callable

import grpc
import pytest

from nodeharness.env import Env
from nodeharness.security import LocalCertificateAuthority


FAKE_SCHEDULER = '''#!__PYTHON__
import http.server
import json
import os
import signal
import sys
import threading
import time

args = dict(arg[2:].split("=", 1) for arg in sys.argv[1:])

record_path = os.environ.get("FAKE_SCHEDULER_RECORD")
if record_path:
    with open(record_path, "w") as record:
        json.dump(
            {
                "args": sys.argv[1:],
                "namespace": os.environ.get("NAMESPACE"),
            },
            record,
        )

healthz_status = int(os.environ.get("FAKE_SCHEDULER_HEALTHZ_STATUS", "200"))
metrics_status = int(os.environ.get("FAKE_SCHEDULER_METRICS_STATUS", "200"))
metrics_body = os.environ.get("FAKE_SCHEDULER_METRICS_BODY", "")
startup_delay = float(os.environ.get("FAKE_SCHEDULER_STARTUP_DELAY", "0"))


class Handler(http.server.BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path == "/healthz":
            status, body = healthz_status, b"ok"
        elif self.path == "/metrics":
            status, body = metrics_status, metrics_body.encode()
        else:
            status, body = 404, b""

        self.send_response(status)
        self.send_header("Content-Type", "text/plain; version=0.0.4; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


def serve(port):
    server = http.server.ThreadingHTTPServer(("127.0.0.1", port), Handler)
    threading.Thread(target=server.serve_forever, daemon=True).start()
    return server


stop = threading.Event()
signal.signal(signal.SIGTERM, lambda *_: stop.set())

time.sleep(startup_delay)
servers = [
    serve(int(args["healthz-port"])),
    serve(int(args["metrics-port"])),
]

print("fake scheduler serving", flush=True)

while not stop.wait(0.05):
    pass

for server in servers:
    server.shutdown()
'''


def write_script(directory: pathlib.Path, name: str, body: str) -> str:
    path = directory / name
    path.write_text(body.replace("__PYTHON__", sys.executable))
    path.chmod(0o755)

    return str(path)


async def echo(request: bytes, context: grpc.aio.ServicerContext) -> bytes:
    return request


def echo_handler() -> grpc.GenericRpcHandler:
    return grpc.method_handlers_generic_handler(
        "nodeharness.test.Echo",
        {
            "Echo": grpc.unary_unary_rpc_method_handler(echo),
        },
    )


@pytest.fixture
def script_factory(tmp_path: pathlib.Path) -> Callable[[str, str], str]:
    def create_script(name: str, body: str) -> str:
        return write_script(tmp_path, name, body)

    return create_script


@pytest.fixture
def fake_scheduler_path(tmp_path: pathlib.Path) -> str:
    return write_script(tmp_path, "scheduler", FAKE_SCHEDULER)


@pytest.fixture
def scheduler_env(fake_scheduler_path: str) -> Env:
    return Env(
        NODE_HARNESS_SCHEDULER_PATH=fake_scheduler_path,
        NODE_HARNESS_HEALTH_TIMEOUT="10s",
        NODE_HARNESS_DIAL_TIMEOUT="2s",
        NODE_HARNESS_HTTP_TIMEOUT="2s",
        NODE_HARNESS_PROCESS_STOP_TIMEOUT="5s",
    )


@pytest.fixture
def record_path(tmp_path: pathlib.Path) -> str:
    return str(tmp_path / "record.json")


@pytest.fixture
def read_record(record_path: str) -> Callable[[], dict]:
    def read() -> dict:
        with open(record_path) as record:
            return json.load(record)

    return read


@pytest.fixture
def certificate_authority() -> LocalCertificateAuthority:
    return LocalCertificateAuthority(
        trust_domain="localhost",
        namespace="default",
        port=50001,
    )


@pytest.fixture
async def echo_server() -> AsyncGenerator[int, None]:
    server = grpc.aio.server()
    server.add_generic_rpc_handlers((echo_handler(),))
    port = server.add_insecure_port("127.0.0.1:0")

    await server.start()

    yield port

    await server.stop(None)


@pytest.fixture
async def mtls_echo_server(
    certificate_authority: LocalCertificateAuthority,
) -> AsyncGenerator[int, None]:
    certificate_pem, key_pem = certificate_authority.issue(
        "dapr-scheduler",
        dns_names=["localhost"],
        ip_addresses=["127.0.0.1"],
    )

    server = grpc.aio.server()
    server.add_generic_rpc_handlers((echo_handler(),))
    port = server.add_secure_port(
        "127.0.0.1:0",
        grpc.ssl_server_credentials(
            [(key_pem, certificate_pem)],
            root_certificates=certificate_authority.trust_anchors,
            require_client_auth=True,
        ),
    )

    await server.start()

    yield port

    await server.stop(None)


@pytest.fixture(autouse=True)
def isolate_scheduler_path(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("NODE_HARNESS_SCHEDULER_PATH", raising=False)
