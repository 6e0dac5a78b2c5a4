"""Shared fixtures for the turnflow test suite."""

import pytest

from turnflow.observability import clear_trace_context


@pytest.fixture(autouse=True)
def isolated_turnflow_home(tmp_path_factory, monkeypatch):
    """Point TURNFLOW_HOME at an empty directory so a local configuration.json never leaks in."""
    home = tmp_path_factory.mktemp("turnflow_home")
    monkeypatch.setenv("TURNFLOW_HOME", str(home))
    clear_trace_context()
    yield home
    clear_trace_context()
