"""
Tests for ConfigManager
"""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from config_manager import ConfigManager


class TestConfigLoading:
    """Test loading and merging configuration."""

    def test_writes_defaults_when_missing(self, tmp_path):
        """Should create the config file with defaults on first use."""
        path = tmp_path / "nested" / "config.json"

        manager = ConfigManager(str(path))

        assert path.exists()
        assert manager.get("memory.stm_decay_rate") == 0.05
        assert manager.get("sweep.signal_threshold") == 0.5
        assert json.loads(path.read_text())["retrieval"]["max_total_injection"] == 7

    def test_merges_partial_user_config(self, tmp_path):
        """Should keep defaults for keys the user file leaves out."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"memory": {"stm_decay_rate": 0.2}}))

        manager = ConfigManager(str(path))

        assert manager.get("memory.stm_decay_rate") == 0.2
        assert manager.get("memory.ltm_decay_rate") == 0.01
        assert manager.get("scoring.interference") == -0.10

    def test_invalid_json_falls_back_to_defaults(self, tmp_path):
        """Should use defaults when the file is not valid JSON."""
        path = tmp_path / "config.json"
        path.write_text("{not json")

        manager = ConfigManager(str(path))

        assert manager.get("memory.max_memories_per_stop") == 4

    def test_defaults_are_not_shared(self, tmp_path):
        """Mutating one manager should not leak into the class defaults."""
        first = ConfigManager(str(tmp_path / "a.json"))
        first.config["memory"]["auto_promote_to_ltm"].append("semantic")

        second = ConfigManager(str(tmp_path / "b.json"))

        assert "semantic" not in second.get("memory.auto_promote_to_ltm")


class TestGetSet:
    """Test dot-notation access."""

    def test_get_missing_returns_default(self, config):
        """Unknown keys should return the supplied default."""
        assert config.get("memory.nope", 42) == 42
        assert config.get("nope.deeper") is None

    def test_set_persists(self, tmp_path):
        """set() should write through to the file."""
        path = tmp_path / "config.json"
        manager = ConfigManager(str(path))

        manager.set("sweep.structural_weight", 1.5)

        assert ConfigManager(str(path)).get("sweep.structural_weight") == 1.5

    def test_set_creates_sections(self, config):
        """set() should create intermediate sections."""
        config.set("extra.nested.value", "x")

        assert config.get("extra.nested.value") == "x"

    def test_section_returns_copy(self, config):
        """section() should not expose the live dict."""
        section = config.section("memory")
        section["stm_decay_rate"] = 99

        assert config.get("memory.stm_decay_rate") == 0.05
        assert config.section("missing") == {}


class TestPaths:
    """Test path resolution."""

    def test_relative_paths_resolve_against_config_dir(self, tmp_path):
        """Relative paths should live next to the config file."""
        manager = ConfigManager(str(tmp_path / "config.json"))

        assert manager.get_path("database_file") == tmp_path / "memory.db"

    def test_creates_dir_paths(self, tmp_path):
        """Keys ending in _dir should be created."""
        ConfigManager(str(tmp_path / "config.json"))

        assert (tmp_path / "logs").is_dir()

    def test_unknown_path_raises(self, config):
        """Should raise ValueError for a path key that is not configured."""
        with pytest.raises(ValueError):
            config.get_path("nope")
