import pytest

from nodeharness.errors import NodeConfigurationError
from nodeharness.scheduler import (
    RunState,
    parse_cluster_topology,
    parse_initial_cluster,
)


class TestParseClusterTopology:
    def test_parses_comma_separated_entries(self):
        assert parse_cluster_topology("a=1,b=2") == {"a": 1, "b": 2}

    def test_parses_entry_lists(self):
        assert parse_cluster_topology(["a=1", "b=2,c=3"]) == {"a": 1, "b": 2, "c": 3}

    def test_strips_whitespace(self):
        assert parse_cluster_topology(" a = 1 , b=2 ") == {"a": 1, "b": 2}

    @pytest.mark.parametrize(
        "entries",
        [
            "a=1,b",
            "a=1=2",
            "a=1,",
        ],
    )
    def test_entries_without_exactly_one_separator_are_fatal(self, entries: str):
        with pytest.raises(NodeConfigurationError):
            parse_cluster_topology(entries)

    def test_non_numeric_ports_are_fatal(self):
        with pytest.raises(NodeConfigurationError, match="non-numeric"):
            parse_cluster_topology("a=http")


class TestParseInitialCluster:
    def test_parses_peer_urls(self):
        assert parse_initial_cluster(
            "a=http://127.0.0.1:2380,b=http://127.0.0.1:2381"
        ) == [
            ("a", "http://127.0.0.1:2380"),
            ("b", "http://127.0.0.1:2381"),
        ]

    def test_entries_without_a_url_are_fatal(self):
        with pytest.raises(NodeConfigurationError):
            parse_initial_cluster("a=http://127.0.0.1:2380,b")


class TestRunState:
    def test_compare_and_swap(self):
        state = RunState()

        assert state.compare_and_swap(False, True)
        assert state.value is True
        assert state.compare_and_swap(False, True) is False
        assert state.compare_and_swap(True, False)
        assert state.compare_and_swap(True, False) is False
        assert state.value is False
