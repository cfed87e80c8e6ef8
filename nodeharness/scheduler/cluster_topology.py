from typing import Iterable

from nodeharness.errors import NodeConfigurationError


def split_entries(entries: str | Iterable[str]) -> list[str]:
    if isinstance(entries, str):
        entries = [entries]

    return [
        entry
        for item in entries
        for entry in item.split(",")
    ]


def parse_cluster_topology(entries: str | Iterable[str]) -> dict[str, int]:
    """
    Parse etcd client port entries of the form ``id=port`` into a map
    of node id to port. Entries may be passed as a comma separated
    string, a list of entries, or both.
    """
    client_ports: dict[str, int] = {}

    for entry in split_entries(entries):
        id_and_port = entry.split("=")
        if len(id_and_port) != 2:
            raise NodeConfigurationError(
                f"Err. - malformed etcd client port entry {entry!r}, expected id=port"
            )

        scheduler_id = id_and_port[0].strip()
        port = id_and_port[1].strip()

        try:
            client_ports[scheduler_id] = int(port)

        except ValueError as err:
            raise NodeConfigurationError(
                f"Err. - etcd client port entry {entry!r} has a non-numeric port"
            ) from err

    return client_ports


def parse_initial_cluster(initial_cluster: str) -> list[tuple[str, str]]:
    peers: list[tuple[str, str]] = []

    for entry in split_entries(initial_cluster):
        peer_id, separator, peer_url = entry.partition("=")
        if not separator or not peer_id.strip() or not peer_url.strip():
            raise NodeConfigurationError(
                f"Err. - malformed initial cluster entry {entry!r}, expected id=url"
            )

        peers.append((peer_id.strip(), peer_url.strip()))

    return peers
