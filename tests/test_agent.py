"""Tests for the agent handle and the console channel."""

import io

import pytest
from rich.console import Console

from cobot.agent import AgentContext, RankedAction, create_agent
from cobot.channels.console import for_each_input, start
from cobot.config import Settings

from conftest import action_yaml, agent_config_yaml


@pytest.fixture
def settings(agent_dir):
    return Settings(storage_path=agent_dir, use_git=False)


@pytest.fixture
def agent(settings):
    return create_agent(settings)


class TestLifecycle:

    def test_snapshot_requires_initialize(self, settings):
        agent = AgentContext(settings)
        assert not agent.initialized
        with pytest.raises(RuntimeError):
            agent.rank("restart")

    def test_initialize_builds_cache(self, agent, agent_dir):
        assert agent.initialized
        assert (agent_dir / "local" / "cache" / "v0.0.0" / "english.vocabulary").is_file()
        assert agent.snapshot.action_names == ("restart-server", "shutdown", "list-processes")

    def test_second_agent_loads_from_cache(self, agent, settings):
        other = create_agent(settings)
        assert other.snapshot.from_cache is True

    def test_reload_picks_up_new_actions(self, agent, agent_dir):
        before = agent.snapshot
        (agent_dir / "actions" / "backup.yaml").write_bytes(action_yaml("backup", "back up the database"))
        (agent_dir / "agent-config.yaml").write_bytes(
            agent_config_yaml(["restart-server", "shutdown", "list-processes", "backup"])
        )

        after = agent.reload()
        assert agent.snapshot is after
        assert after is not before
        assert after.action_names[-1] == "backup"
        assert agent.query_description("back up the database") == ["backup"]

    def test_readers_do_not_wait_for_rebuild(self, agent):
        with agent._rebuild_lock:
            assert agent.query_description("restart the server") == ["restart-server"]

    def test_reload_swaps_catalog_and_snapshot_together(self, agent, agent_dir):
        held = agent.state
        (agent_dir / "agent-config.yaml").write_bytes(agent_config_yaml(["shutdown", "list-processes"]))
        agent.reload()

        assert held.resolve("restart the server", 0.5).name == "restart-server"
        state = agent.state
        assert state is not held
        assert state.catalog.names == list(state.snapshot.action_names)
        assert agent.catalog is state.catalog

    def test_reordered_config_dispatches_same_action(self, agent, agent_dir, settings):
        (agent_dir / "agent-config.yaml").write_bytes(
            agent_config_yaml(["list-processes", "shutdown", "restart-server"])
        )
        snapshot = agent.reload()
        assert snapshot.from_cache is False
        assert agent.dispatch("restart the server") == "Run action 'restart-server'."

        other = create_agent(settings)
        assert other.snapshot.from_cache is True
        assert other.dispatch("restart the server") == "Run action 'restart-server'."


class TestQueries:

    def test_query_description(self, agent):
        assert agent.query_description("restart the server") == ["restart-server"]

    def test_reboot_the_box_returns_everything(self, agent):
        assert agent.query_description("reboot the box", minimum_score=0.0) == [
            "restart-server", "shutdown", "list-processes"
        ]

    def test_default_threshold(self, agent):
        assert agent.query_description("reboot the box") == []

    def test_rank_scores(self, agent):
        ranked = agent.rank("shut down the machine")
        assert ranked[0] == RankedAction("shutdown", pytest.approx(1.0))

    def test_resolve_exact_name(self, agent):
        assert agent.resolve("list-processes").name == "list-processes"

    def test_resolve_by_similarity(self, agent):
        assert agent.resolve("please list the running processes").name == "list-processes"

    def test_resolve_nothing(self, agent):
        assert agent.resolve("make me a sandwich") is None


class TestMessages:

    def test_dispatch_match(self, agent):
        assert agent.dispatch("restart the server") == "Run action 'restart-server'."

    def test_dispatch_no_match(self, agent):
        assert agent.dispatch("make me a sandwich") == "No similar match for user input: 'make me a sandwich'."

    def test_greetings(self, agent):
        assert agent.say_hello() == "Hello! Agent default ready."
        assert agent.say_goodbye() == "Bye! Agent default shutting down."


class TestConsoleChannel:

    def test_for_each_input_stops_on_empty_line(self):
        seen = []
        console = Console(file=io.StringIO())
        handled = for_each_input(io.StringIO("one\ntwo\n\nthree\n"), seen.append, console=console)
        assert handled == 2
        assert seen == ["one", "two"]

    def test_for_each_input_stops_at_end_of_input(self):
        seen = []
        for_each_input(io.StringIO("only"), seen.append, console=Console(file=io.StringIO()))
        assert seen == ["only"]

    def test_start(self, agent):
        out = io.StringIO()
        start(agent, io.StringIO("restart the server\n\n"), console=Console(file=out, width=200))
        text = out.getvalue()
        assert "Hello! Agent default ready." in text
        assert "Run action 'restart-server'." in text
        assert "Bye! Agent default shutting down." in text
