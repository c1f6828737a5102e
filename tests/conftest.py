"""Shared pytest fixtures for oken tests."""

import logging
from unittest.mock import Mock

import pytest
import structlog

from oken.paths import OkenPaths


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo any structlog/stdlib logging configuration made by a test."""
    yield
    structlog.reset_defaults()
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)


@pytest.fixture
def paths(tmp_path):
    """Isolated config, data and ssh config locations.

    Returns:
        OkenPaths: Locations under tmp_path (nothing created yet)
    """
    return OkenPaths(
        config_dir=tmp_path / "config",
        data_dir=tmp_path / "data",
        ssh_config=tmp_path / ".ssh" / "config",
    )


@pytest.fixture
def fake_ssh(tmp_path):
    """Create an executable stand-in for the ssh binary.

    Returns:
        Path: Path to the executable file
    """
    binary_path = tmp_path / "bin" / "ssh"
    binary_path.parent.mkdir(parents=True, exist_ok=True)
    binary_path.write_text("#!/bin/sh\nexit 0\n")
    binary_path.chmod(0o755)
    return binary_path


@pytest.fixture
def write_ssh_config(paths):
    """Write text to the isolated ~/.ssh/config.

    Returns:
        Callable[[str], Path]: Writer returning the config path
    """

    def write(text: str):
        paths.ssh_config.parent.mkdir(parents=True, exist_ok=True)
        paths.ssh_config.write_text(text)
        return paths.ssh_config

    return write


@pytest.fixture
def make_process():
    """Factory for mock Popen objects that exit with a given code.

    Returns:
        Callable[[int], Mock]: Factory building a finished mock process
    """

    def make(returncode: int = 0):
        process = Mock()
        process.pid = 12345
        process.wait.return_value = returncode
        process.poll.return_value = returncode
        process.returncode = returncode
        return process

    return make


@pytest.fixture
def oken_env(tmp_path, monkeypatch, paths):
    """Point the CLI's environment lookups at the isolated locations."""
    monkeypatch.setenv("OKEN_CONFIG_DIR", str(paths.config_dir))
    monkeypatch.setenv("OKEN_DATA_DIR", str(paths.data_dir))
    monkeypatch.setenv("HOME", str(tmp_path))
    return paths
