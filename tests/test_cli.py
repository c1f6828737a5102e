"""Tests for the command line interface."""

import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from oken import __version__
from oken.cli.app import app, route_args
from oken.history import AuditStore, ConnectionRecord
from oken.hosts import HostEntry, HostRegistry
from oken.process import SSHBinary
from oken.supervisor import EXIT_CANCELLED, EXIT_DECLINED, SessionResult, SessionState

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep the CLI from reconfiguring logging for the rest of the session."""
    with patch("oken.cli.app.setup_logging"):
        yield


@pytest.fixture
def env(oken_env, fake_ssh):
    """Isolated locations with config.toml pointing at a stand-in ssh."""
    oken_env.config_dir.mkdir(parents=True, exist_ok=True)
    oken_env.config_file.write_text(f"ssh_binary = {json.dumps(str(fake_ssh))}\n")
    return oken_env


@pytest.fixture
def registry(env):
    reg = HostRegistry.from_paths(env)
    reg.add(HostEntry(alias="web", hostname="10.0.0.1", user="deploy", tags=["app"]))
    reg.add(HostEntry(alias="prod-db", hostname="10.0.1.60", tags=["prod", "db"]))
    return reg


def invoke(*argv):
    return runner.invoke(app, route_args(list(argv)))


def session(exit_code=0):
    return SessionResult(exit_code=exit_code, state=SessionState.TERMINAL_EXIT)


class TestRouteArgs:
    """Default-command routing"""

    def test_empty_routes_to_connect(self):
        assert route_args([]) == ["connect"]

    def test_alias_routes_to_connect(self):
        assert route_args(["web"]) == ["connect", "web"]

    def test_ssh_flags_route_to_connect(self):
        assert route_args(["-p", "2222", "u@h"]) == ["connect", "-p", "2222", "u@h"]

    def test_subcommands_are_kept(self):
        assert route_args(["host", "list"]) == ["host", "list"]
        assert route_args(["audit", "-n", "5"]) == ["audit", "-n", "5"]

    def test_global_options_stay_in_front(self):
        assert route_args(["--log-level", "DEBUG", "web"]) == [
            "--log-level",
            "DEBUG",
            "connect",
            "web",
        ]
        assert route_args(["--log-file=x.log", "tunnel", "list"]) == [
            "--log-file=x.log",
            "tunnel",
            "list",
        ]

    def test_eager_options_are_not_routed(self):
        assert route_args(["--version"]) == ["--version"]
        assert route_args(["-h"]) == ["-h"]


class TestGlobalOptions:
    def test_version(self, env):
        result = invoke("--version")

        assert result.exit_code == 0
        assert f"oken {__version__}" in result.output


class TestHostCommands:
    """oken host ..."""

    def test_add_and_list(self, env):
        result = invoke("host", "add", "web", "deploy@10.0.0.1", "-p", "2222")
        assert result.exit_code == 0
        assert "Added host 'web'" in result.output

        result = invoke("host", "list")

        assert result.exit_code == 0
        assert "deploy@10.0.0.1" in result.output
        assert "2222" in result.output
        assert "managed" in result.output

    def test_add_with_tags(self, env):
        invoke("host", "add", "db", "10.0.0.2", "-t", "prod", "-t", "db")

        assert HostRegistry.from_paths(env).resolve("db").tags == ("prod", "db")

    def test_add_duplicate_fails(self, registry):
        result = invoke("host", "add", "web", "10.9.9.9")

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_list_empty(self, env):
        result = invoke("host", "list")

        assert result.exit_code == 0
        assert "No hosts configured" in result.output

    def test_list_includes_ssh_config_hosts(self, env, write_ssh_config):
        write_ssh_config("Host bastion\n    HostName 203.0.113.7\n")

        result = invoke("host", "list")

        assert "bastion" in result.output

    def test_remove(self, registry):
        result = invoke("host", "remove", "web")

        assert result.exit_code == 0
        assert registry.resolve("web") is None

    def test_remove_external_host_fails(self, env, write_ssh_config):
        write_ssh_config("Host bastion\n    HostName 203.0.113.7\n")

        result = invoke("host", "remove", "bastion")

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_edit(self, registry):
        result = invoke("host", "edit", "web", "--port", "2200", "-t", "lab")

        assert result.exit_code == 0
        entry = registry.resolve("web")
        assert entry.port == 2200
        assert entry.tags == ("lab",)

    def test_edit_without_changes_fails(self, registry):
        result = invoke("host", "edit", "web")

        assert result.exit_code == 1
        assert "Nothing to change" in result.output


class TestTunnelCommands:
    """oken tunnel ..."""

    def test_add_and_list(self, env):
        result = invoke("tunnel", "add", "db", "-L", "5432:localhost:5432", "db.io")
        assert result.exit_code == 0
        assert "Added tunnel 'db'" in result.output

        result = invoke("tunnel", "list")

        assert result.exit_code == 0
        assert "db.io" in result.output
        assert "stopped" in result.output

    def test_add_without_target_fails(self, env):
        result = invoke("tunnel", "add", "db", "-L", "5432:localhost:5432")

        assert result.exit_code == 1
        assert "No target host" in result.output

    def test_list_empty(self, env):
        result = invoke("tunnel", "list")

        assert "No tunnels configured" in result.output

    def test_start_unknown_fails(self, env):
        result = invoke("tunnel", "start", "ghost")

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_stop_not_running(self, env):
        invoke("tunnel", "add", "db", "-L", "1:l:1", "db.io")

        result = invoke("tunnel", "stop", "db")

        assert result.exit_code == 0
        assert "is not running" in result.output


class TestAuditCommand:
    """oken audit"""

    def test_empty(self, env):
        result = invoke("audit")

        assert result.exit_code == 0
        assert "No connections recorded." in result.output

    def test_lists_newest_first(self, env):
        store = AuditStore.from_paths(env)
        for i, alias in enumerate(["first", "second"]):
            store.append(
                ConnectionRecord(
                    alias=alias,
                    target=f"{alias}.io",
                    started_at=datetime(2026, 1, 1, 10, i, tzinfo=timezone.utc),
                    duration=65,
                    exit_code=i,
                )
            )

        result = invoke("audit", "-n", "5")

        assert result.exit_code == 0
        assert result.output.index("second") < result.output.index("first")
        assert "1m 05s" in result.output


class TestPrintCommand:
    def test_prints_full_command(self, registry, fake_ssh):
        result = invoke("print", "web")

        assert result.exit_code == 0
        assert (
            f"{fake_ssh} -o ServerAliveInterval=60 -o ServerAliveCountMax=3 "
            "deploy@10.0.0.1"
        ) in result.output

    def test_unknown_alias_is_literal(self, env, fake_ssh):
        result = invoke("print", "root@box")

        assert result.exit_code == 0
        assert "ServerAliveCountMax=3 root@box" in result.output


class TestConnect:
    """Resolving and connecting"""

    @pytest.fixture
    def supervisor(self):
        with patch("oken.cli.app.ConnectionSupervisor") as supervisor_class:
            supervisor_class.return_value.connect.return_value = session(0)
            yield supervisor_class.return_value

    def connected_target(self, supervisor):
        return supervisor.connect.call_args.args[0]

    def test_exact_alias_connects_directly(self, registry, supervisor):
        with patch("oken.cli.app.run_picker") as run_picker:
            result = invoke("web")

        assert result.exit_code == 0
        run_picker.assert_not_called()
        target = self.connected_target(supervisor)
        assert target.alias == "web"
        assert target.args == ("deploy@10.0.0.1",)

    def test_exit_code_is_propagated(self, registry, supervisor):
        supervisor.connect.return_value = session(42)

        assert invoke("web").exit_code == 42

    def test_options_are_passed(self, registry, supervisor):
        invoke("-y", "--no-reconnect", "web")

        options = supervisor.connect.call_args.args[1]
        assert options.assume_yes is True
        assert options.no_reconnect is True

    def test_partial_alias_opens_picker_with_query(self, registry, supervisor):
        seen = {}

        def choose(picker):
            seen["query"] = picker.query
            return picker.visible[0].entry

        with patch("oken.cli.app.run_picker", side_effect=choose):
            result = invoke("we")

        assert result.exit_code == 0
        assert seen["query"] == "we"
        assert self.connected_target(supervisor).alias == "web"

    def test_picker_cancel_exits_without_connecting(self, registry, supervisor):
        with patch("oken.cli.app.run_picker", return_value=None):
            result = invoke()

        assert result.exit_code == EXIT_CANCELLED
        supervisor.connect.assert_not_called()

    def test_picker_without_hosts_fails(self, env, supervisor):
        result = invoke()

        assert result.exit_code == 1
        assert "No hosts configured" in result.output

    def test_tag_with_single_match(self, registry, supervisor):
        result = invoke("--tag", "app")

        assert result.exit_code == 0
        assert self.connected_target(supervisor).alias == "web"

    def test_tag_without_match_fails(self, registry, supervisor):
        result = invoke("--tag", "nope")

        assert result.exit_code == 1
        assert "No hosts found with tag 'nope'" in result.output
        supervisor.connect.assert_not_called()

    def test_tag_with_many_matches_opens_tag_picker(self, registry, supervisor):
        registry.add(HostEntry(alias="prod-api", hostname="10.0.1.70", tags=["prod"]))
        seen = {}

        def choose(picker):
            seen["query"] = picker.query
            seen["aliases"] = {h.alias for h in picker.visible}
            return picker.visible[0].entry

        with patch("oken.cli.app.run_picker", side_effect=choose):
            invoke("--tag", "prod")

        assert seen["query"] == "#prod"
        assert seen["aliases"] == {"prod-api", "prod-db"}

    def test_ssh_arguments_pass_through(self, registry, supervisor):
        result = invoke("-p", "2222", "root@box", "uptime")

        assert result.exit_code == 0
        target = self.connected_target(supervisor)
        assert target.args == ("-p", "2222", "root@box", "uptime")
        assert target.alias == "root@box"

    def test_passthrough_to_known_host_keeps_its_tags(self, registry, supervisor):
        invoke("-A", "10.0.1.60")

        target = self.connected_target(supervisor)
        assert target.alias == "prod-db"
        assert target.tags == ("prod", "db")


class TestConnectEndToEnd:
    """Connecting through the real supervisor with a stubbed spawn"""

    def test_danger_host_declined_without_terminal(self, registry):
        with patch.object(SSHBinary, "spawn") as spawn:
            result = invoke("prod-db")

        assert result.exit_code == EXIT_DECLINED
        assert "WARNING" in result.output
        spawn.assert_not_called()

    def test_yes_connects_and_records(self, registry, env, make_process):
        with patch.object(SSHBinary, "spawn", return_value=make_process(0)) as spawn:
            result = invoke("-y", "prod-db")

        assert result.exit_code == 0
        args = spawn.call_args.args[0]
        assert args[-1] == "10.0.1.60"
        assert "ServerAliveInterval=60" in args
        records = list(AuditStore.from_paths(env).records())
        assert [(r.alias, r.exit_code) for r in records] == [("prod-db", 0)]

    def test_passthrough_survives_malformed_hosts_file(self, env, make_process):
        """A broken hosts.toml must not keep plain ssh arguments from working"""
        env.hosts_file.write_text("[hosts.x\n")

        with patch.object(SSHBinary, "spawn", return_value=make_process(0)) as spawn:
            result = invoke("-p", "22", "root@10.0.0.5")

        assert result.exit_code == 0
        spawn.assert_called_once()
        assert spawn.call_args.args[0][-3:] == ["-p", "22", "root@10.0.0.5"]
