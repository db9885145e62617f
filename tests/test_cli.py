"""
Tests for MemorySieve CLI.
"""

import json
import sys
from pathlib import Path
from unittest.mock import patch, MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cli import MemorySieveCLI, build_parser, main
from engine import MemoryEngine
from memory_store import MemoryUnit

PREFERENCE = "I prefer tabs over spaces for indentation in this project."


@pytest.fixture
def cli(config):
    """CLI over a real engine in a temp dir."""
    memory_cli = MemorySieveCLI(MemoryEngine(config))
    yield memory_cli
    memory_cli.engine.close()


def run(cli, *argv):
    args = build_parser().parse_args(list(argv))
    handler = getattr(cli, f"cmd_{args.command}")
    handler(args)


def add_memory(cli, summary, classification="preference", strength=0.5, **kwargs):
    return cli.engine.store.create_memory(MemoryUnit(
        id="", store="stm", classification=classification, summary=summary, strength=strength, **kwargs
    ))


class TestCLIInitialization:
    """Test CLI initialization."""

    def test_cli_initializes_engine(self, cli):
        """CLI should initialize the engine it is given."""
        assert cli.engine.initialized
        assert cli.config is cli.engine.config

    def test_cli_builds_default_engine(self, config):
        """Without an engine, CLI should build one from ConfigManager."""
        with patch('cli.ConfigManager', return_value=config):
            with patch('cli.MemoryEngine') as mock_engine:
                memory_cli = MemorySieveCLI()

        mock_engine.assert_called_once_with(config)
        memory_cli.engine.init.assert_called_once()


class TestStatusCommand:
    """Test the status command."""

    def test_status_shows_counts(self, cli, capsys):
        """Status should show totals and per-store counts."""
        add_memory(cli, "I prefer tabs for indentation")

        run(cli, "status")

        captured = capsys.readouterr()
        assert "Total Memories: 1" in captured.out
        assert "STM : 1 active" in captured.out
        assert "Embeddings: off" in captured.out


class TestListAndSearch:
    """Test listing and searching."""

    def test_list_empty(self, cli, capsys):
        """List should say when nothing is stored."""
        run(cli, "list")

        assert "No memories stored yet." in capsys.readouterr().out

    def test_list_shows_memories(self, cli, capsys):
        """List should show summary and short id."""
        memory = add_memory(cli, "I prefer tabs for indentation", strength=0.6)

        run(cli, "list", "--store", "stm")

        out = capsys.readouterr().out
        assert "[STM] [preference] I prefer tabs for indentation" in out
        assert f"ID: {memory.id[:8]}" in out

    def test_search(self, cli, capsys):
        """Search should rank matching memories."""
        add_memory(cli, "I prefer tabs for indentation")

        run(cli, "search", "tabs")

        out = capsys.readouterr().out
        assert "Searching memories for: tabs" in out
        assert "[preference] I prefer tabs for indentation" in out


class TestLearnCommand:
    """Test learning from text."""

    def test_learn_from_text(self, cli, capsys):
        """learn --text should store extracted memories."""
        run(cli, "learn", "--text", PREFERENCE, "--project", "/work/app")

        out = capsys.readouterr().out
        assert "Learned 1 new memories" in out
        assert cli.engine.get_stats()["total"] == 1
        assert cli.engine.store.get_active_sessions() == []

    def test_learn_quiet(self, cli, capsys):
        """--quiet should print nothing."""
        run(cli, "learn", "--text", PREFERENCE, "--quiet")

        assert capsys.readouterr().out == ""

    def test_learn_nothing_memorable(self, cli, capsys):
        """Plain text should report no memorable content."""
        run(cli, "learn", "--text", "The weather was mild and the sky was blue today.")

        assert "No memorable content found." in capsys.readouterr().out

    def test_learn_without_input(self, cli, capsys):
        """No --text and an empty stdin should print usage help."""
        with patch('select.select', return_value=([], [], [])):
            run(cli, "learn")

        assert "No input provided" in capsys.readouterr().out


class TestContextCommand:
    """Test the session-start context preview."""

    def test_context_verbose_lists_suppressed(self, cli, capsys):
        """-v should list conflicting memories that were dropped."""
        add_memory(cli, "Always use tabs for indentation", strength=0.8)
        add_memory(cli, "Never use tabs for indentation", strength=0.5)

        run(cli, "context", "--project", "/work/app", "-v")

        out = capsys.readouterr().out
        assert "## User Preferences & Constraints" in out
        assert "Suppressed (conflicting):" in out
        assert "Never use tabs for indentation (conflicts with: Always use tabs for indentation)" in out


class TestMaintenanceCommands:
    """Test decay, consolidation and feedback commands."""

    def test_consolidate(self, cli, capsys):
        """consolidate should report promotions."""
        add_memory(cli, "Fixed the flaky import", classification="bugfix")

        run(cli, "consolidate")

        assert "Promoted 1 memories" in capsys.readouterr().out

    def test_decay(self, cli, capsys):
        """decay should report the pass."""
        run(cli, "decay")

        assert "Decay applied to 0 memories" in capsys.readouterr().out

    def test_pin_by_prefix(self, cli, capsys):
        """pin should accept a short id."""
        memory = add_memory(cli, "I prefer tabs for indentation")

        run(cli, "pin", memory.id[:8])

        assert "Pinned: I prefer tabs" in capsys.readouterr().out
        assert cli.engine.get_memory(memory.id).status == "pinned"

    def test_remember_with_note(self, cli):
        """remember should move the memory to LTM and store the note."""
        memory = add_memory(cli, "I prefer tabs for indentation")

        run(cli, "remember", memory.id, "--note", "team standard")

        assert cli.engine.get_memory(memory.id).store == "ltm"
        assert cli.engine.store.get_feedback(memory.id)[0]["content"] == "team standard"

    def test_unknown_memory_exits(self, cli, capsys):
        """Feedback on a missing id should exit with an error."""
        with pytest.raises(SystemExit) as excinfo:
            run(cli, "forget", "deadbeef")

        assert excinfo.value.code == 1
        assert "Memory not found: deadbeef" in capsys.readouterr().out


class TestMemoryAndConfigCommands:
    """Test memory get and config commands."""

    def test_memory_get(self, cli, capsys):
        """memory get should print JSON without the raw vector."""
        memory = add_memory(cli, "I prefer tabs for indentation", embedding=[0.1, 0.2, 0.3])

        run(cli, "memory", "get", memory.id)

        data = json.loads(capsys.readouterr().out)
        assert data["summary"] == "I prefer tabs for indentation"
        assert data["embedding_dimension"] == 3
        assert "embedding" not in data

    def test_config_set_parses_json(self, cli, capsys):
        """config set should store typed values."""
        run(cli, "config", "set", "retrieval.query_limit", "5")
        run(cli, "config", "get", "retrieval.query_limit")

        out = capsys.readouterr().out
        assert "retrieval.query_limit = 5" in out
        assert cli.config.get("retrieval.query_limit") == 5

    def test_config_list(self, cli, capsys):
        """config list should dump the whole config."""
        args = MagicMock()
        args.action = 'list'

        cli.cmd_config(args)

        assert '"stm_decay_rate": 0.05' in capsys.readouterr().out


class TestMain:
    """Test the entry point."""

    def test_main_dispatches(self, config, capsys):
        """main should run the requested command and close the engine."""
        with patch('cli.ConfigManager', return_value=config):
            with patch.object(sys, 'argv', ['memorysieve', 'status']):
                main()

        assert "MemorySieve Status" in capsys.readouterr().out

    def test_main_without_command(self, capsys):
        """main should print help and exit 1 without a command."""
        with patch.object(sys, 'argv', ['memorysieve']):
            with pytest.raises(SystemExit) as excinfo:
                main()

        assert excinfo.value.code == 1
