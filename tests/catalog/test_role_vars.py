"""
Tests for role variable discovery.

Tests cover:
- Flat assignments and coercion
- _label / _description metadata folding
- Block scalars and nested values
- Reading defaults through the host
"""

import pytest

from playdeck.catalog.role_vars import discover_role_variables, read_role_variables


def _by_name(text: str) -> dict:
    return {v.name: v for v in discover_role_variables(text)}


class TestDiscoverRoleVariables:
    def test_flat_assignments(self):
        text = """\
---
# Role defaults
count: 3
enabled: true
greeting: "hello"
ratio: 0.5
"""
        variables = discover_role_variables(text)
        assert [(v.name, v.default_value) for v in variables] == [
            ("count", 3),
            ("enabled", True),
            ("greeting", "hello"),
            ("ratio", 0.5),
        ]

    def test_metadata_folds_into_base_key(self):
        variables = _by_name(
            "count: 3\ncount_label: Number of nodes\ncount_description: How many\n"
        )
        assert set(variables) == {"count"}
        assert variables["count"].label == "Number of nodes"
        assert variables["count"].description == "How many"

    def test_metadata_without_base_is_regular_variable(self):
        variables = _by_name("orphan_label: Something\n")
        assert variables["orphan_label"].default_value == "Something"

    def test_block_scalar(self):
        text = """\
motd: |
  Welcome to
    the demo
next: 1
"""
        variables = _by_name(text)
        assert variables["motd"].default_value == "Welcome to\n  the demo"
        assert variables["next"].default_value == 1

    @pytest.mark.parametrize("marker", [">", "|-", ">-", "|+"])
    def test_block_scalar_markers(self, marker):
        variables = _by_name(f"text: {marker}\n  one\n  two\nafter: x\n")
        assert variables["text"].default_value == "one\ntwo"
        assert variables["after"].default_value == "x"

    def test_nested_list_and_mapping(self):
        text = """\
packages:
  - nginx
  - git
settings:
  port: "80"
  debug: false
flat: [1, two]
"""
        variables = _by_name(text)
        assert variables["packages"].default_value == ["nginx", "git"]
        assert variables["settings"].default_value == {"port": 80, "debug": False}
        assert variables["flat"].default_value == [1, "two"]

    def test_column_zero_sequence(self):
        variables = _by_name("users:\n- alice\n- bob\nafter: 2\n")
        assert variables["users"].default_value == ["alice", "bob"]
        assert variables["after"].default_value == 2

    def test_empty_value_is_none(self):
        variables = _by_name("nothing:\nsomething: 1\n")
        assert variables["nothing"].default_value is None

    def test_inline_comment_is_stripped(self):
        variables = _by_name("port: 8080  # default port\nurl: 'http://x/#frag'\n")
        assert variables["port"].default_value == 8080
        assert variables["url"].default_value == "http://x/#frag"

    def test_repeated_key_updates_default(self):
        variables = discover_role_variables("a: 1\na: 2\n")
        assert len(variables) == 1
        assert variables[0].default_value == 2

    def test_empty_text(self):
        assert discover_role_variables("") == []
        assert discover_role_variables("# only comments\n---\n") == []


class TestReadRoleVariables:
    def test_reads_main_yml(self, host):
        host.write_file("/roles/web/defaults/main.yml", "port: 80\n")
        variables = read_role_variables(host, "/roles/web")
        assert [(v.name, v.default_value) for v in variables] == [("port", 80)]

    def test_falls_back_to_main_yaml(self, host):
        host.write_file("/roles/web/defaults/main.yaml", "port: 81\n")
        assert read_role_variables(host, "/roles/web")[0].default_value == 81

    def test_missing_file_yields_empty(self, host):
        assert read_role_variables(host, "/roles/none") == []

    def test_unreadable_file_yields_empty(self, host):
        host.read_errors["/roles/web/defaults/main.yml"] = PermissionError("denied")
        assert read_role_variables(host, "/roles/web") == []

    def test_empty_file_yields_empty(self, host):
        host.write_file("/roles/web/defaults/main.yml", "\n")
        assert read_role_variables(host, "/roles/web") == []
