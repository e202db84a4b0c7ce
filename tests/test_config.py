"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest

from mcp_cortex.config import (
    STORAGE_ROOT_ENV,
    CortexConfig,
    default_storage_root,
    dict_to_config,
    find_config_file,
    load_config,
    load_json_config,
    load_python_config,
)


class TestDefaults:
    """Tests for default configuration values."""

    def test_storage_root_from_environment(self, temp_root, monkeypatch):
        monkeypatch.setenv(STORAGE_ROOT_ENV, str(temp_root))
        assert default_storage_root() == temp_root

    def test_storage_root_fallback(self, monkeypatch):
        monkeypatch.delenv(STORAGE_ROOT_ENV, raising=False)
        assert default_storage_root() == Path.home() / ".mcp-cortex"

    def test_paths(self, temp_root):
        config = CortexConfig(storage_root=temp_root)
        assert config.get_branch_notes_path() == temp_root / "branch_notes"
        assert config.get_context_path() == temp_root / "context"
        assert config.get_knowledge_path() == temp_root / "knowledge"
        assert config.get_checklists_path() == temp_root / "checklists"


class TestFindConfigFile:
    """Tests for find_config_file."""

    def test_python_config_found_first(self, temp_root):
        (temp_root / "cortex_config.py").write_text("CONFIG = {}")
        (temp_root / "cortex_config.toml").write_text("")
        assert find_config_file(temp_root).name == "cortex_config.py"

    def test_toml_before_json(self, temp_root):
        (temp_root / "cortex_config.toml").write_text("")
        (temp_root / "cortex_config.json").write_text("{}")
        assert find_config_file(temp_root).name == "cortex_config.toml"

    def test_dotfile_config(self, temp_root):
        (temp_root / ".cortex.json").write_text("{}")
        assert find_config_file(temp_root).name == ".cortex.json"

    def test_no_config(self, temp_root):
        assert find_config_file(temp_root) is None


class TestDictToConfig:
    """Tests for dict_to_config."""

    def test_all_sections(self, temp_root):
        config = dict_to_config({
            "directories": {"branch_notes": "notes", "knowledge": "kb"},
            "defaults": {"project": "shop", "branch": "develop", "author": "ana", "lock_timeout": 3},
            "gap_analysis": {"max_depth": 2, "include_tests": True, "file_extensions": [".py"]},
            "vocabulary": {"technology": ["Rust"], "production": ["Shipped"]},
        }, temp_root)

        assert config.get_branch_notes_path() == temp_root / "notes"
        assert config.get_knowledge_path() == temp_root / "kb"
        assert config.context_dir == "context"
        assert (config.default_project, config.default_branch, config.default_author) == ("shop", "develop", "ana")
        assert config.lock_timeout == 3.0
        assert config.gap_analysis.max_depth == 2
        assert config.gap_analysis.include_tests is True
        assert config.gap_analysis.include_node_modules is False
        assert config.gap_analysis.file_extensions == [".py"]
        assert config.technology_keywords == ["rust"]
        assert config.production_terms == ["shipped"]
        assert "draft" in config.development_terms

    def test_empty_dict_gives_defaults(self, temp_root):
        config = dict_to_config({}, temp_root)
        assert config.default_branch == "main"
        assert config.gap_analysis.max_depth == 5


class TestLoadConfig:
    """Tests for load_config with each format."""

    def test_no_file_uses_defaults(self, temp_root):
        config = load_config(temp_root)
        assert config.storage_root == temp_root
        assert config.custom_tools == {}

    def test_json(self, temp_root):
        (temp_root / "cortex_config.json").write_text(json.dumps({"defaults": {"project": "json-proj"}}))
        assert load_json_config(temp_root / "cortex_config.json") == {"defaults": {"project": "json-proj"}}
        assert load_config(temp_root).default_project == "json-proj"

    def test_toml(self, temp_root):
        (temp_root / "cortex_config.toml").write_text('[defaults]\nproject = "toml-proj"\n\n[gap_analysis]\nmax_depth = 3\n')
        config = load_config(temp_root)
        assert config.default_project == "toml-proj"
        assert config.gap_analysis.max_depth == 3

    def test_python_with_custom_tools(self, temp_root):
        (temp_root / "cortex_config.py").write_text(
            'CONFIG = {"defaults": {"branch": "trunk"}}\n\n'
            "def custom_tool_hello(engine, params):\n"
            '    """Say hello."""\n'
            '    return {"hello": params.get("name")}\n'
        )
        config_dict, tools = load_python_config(temp_root / "cortex_config.py")
        assert config_dict == {"defaults": {"branch": "trunk"}}
        assert list(tools) == ["hello"]

        config = load_config(temp_root)
        assert config.default_branch == "trunk"
        assert config.custom_tools["hello"](None, {"name": "x"}) == {"hello": "x"}

    def test_explicit_path(self, temp_root):
        other = temp_root / "elsewhere.json"
        other.write_text(json.dumps({"defaults": {"author": "bo"}}))
        config = load_config(temp_root / "root", other)
        assert config.default_author == "bo"
        assert config.storage_root == temp_root / "root"

    def test_unsupported_extension(self, temp_root):
        other = temp_root / "config.ini"
        other.write_text("")
        with pytest.raises(ValueError):
            load_config(temp_root, other)
