"""Configuration loading for MCP Cortex.

Supports three tiers:
1. Simple config via .toml or .json - most users
2. Python config via .py - power users with custom tools
3. Full override via subclassing - rare cases
"""

from __future__ import annotations

import importlib.util
import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

# Python 3.11+ has tomllib in stdlib; fall back to tomli for older versions
try:
    import tomllib  # Python 3.11+
except ImportError:
    try:
        import tomli as tomllib  # Python <3.11
    except ImportError:  # pragma: no cover
        tomllib = None


STORAGE_ROOT_ENV = "MCP_CORTEX_ROOT"

DEFAULT_FILE_EXTENSIONS = [
    ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs",
    ".py", ".md", ".json", ".yaml", ".yml", ".toml",
]

DEFAULT_TECHNOLOGY_KEYWORDS = [
    "sql", "python", "databricks", "docker", "git", "mcp", "node.js", "javascript",
]

DEFAULT_PRODUCTION_TERMS = [
    "completed", "deployed", "merged", "production", "released", "finished",
    "implemented", "tested", "validated", "approved", "live",
]

DEFAULT_DEVELOPMENT_TERMS = [
    "working on", "in progress", "todo", "draft", "testing", "prototype",
    "experimenting", "trying", "investigating", "planning",
]


def default_storage_root() -> Path:
    """Storage root from the environment, else ~/.mcp-cortex."""
    env_root = os.environ.get(STORAGE_ROOT_ENV)
    if env_root:
        return Path(env_root).expanduser()
    return Path.home() / ".mcp-cortex"


@dataclass
class GapAnalysisDefaults:
    """Defaults applied when a gap analysis request omits an option."""
    max_depth: int = 5
    include_tests: bool = False
    include_node_modules: bool = False
    file_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_FILE_EXTENSIONS))


@dataclass
class CortexConfig:
    """Configuration for a cortex storage root."""

    # Storage location; every document lives beneath it
    storage_root: Path = field(default_factory=default_storage_root)

    # Directory structure (relative to storage_root)
    branch_notes_dir: str = "branch_notes"
    context_dir: str = "context"
    knowledge_dir: str = "knowledge"
    checklists_dir: str = "checklists"

    # Used when a tool call omits project/branch
    default_project: str = "default-project"
    default_branch: str = "main"

    # Author recorded on documents when none is given
    default_author: str = "unknown"

    gap_analysis: GapAnalysisDefaults = field(default_factory=GapAnalysisDefaults)

    # Vocabularies used by the survey and relationship detection
    technology_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_TECHNOLOGY_KEYWORDS))
    production_terms: list[str] = field(default_factory=lambda: list(DEFAULT_PRODUCTION_TERMS))
    development_terms: list[str] = field(default_factory=lambda: list(DEFAULT_DEVELOPMENT_TERMS))

    # Seconds to wait for a file lock before giving up
    lock_timeout: float = 10.0

    # Custom tools (populated from Python config)
    custom_tools: dict[str, Callable] = field(default_factory=dict)

    def get_branch_notes_path(self) -> Path:
        return self.storage_root / self.branch_notes_dir

    def get_context_path(self) -> Path:
        return self.storage_root / self.context_dir

    def get_knowledge_path(self) -> Path:
        return self.storage_root / self.knowledge_dir

    def get_checklists_path(self) -> Path:
        return self.storage_root / self.checklists_dir


def load_toml_config(path: Path) -> dict[str, Any]:
    """Load configuration from TOML file."""
    if tomllib is None:
        raise ImportError("tomli required for TOML config: pip install tomli")
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_json_config(path: Path) -> dict[str, Any]:
    """Load configuration from JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_python_config(path: Path) -> tuple[dict[str, Any], dict[str, Callable]]:
    """Load configuration from Python file.

    Returns:
        Tuple of (config_dict, custom_tools_dict)

    Convention:
        - CONFIG dict or config dict for static configuration
        - Functions named custom_tool_* become MCP tools
    """
    spec = importlib.util.spec_from_file_location("cortex_config", path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load Python config from {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules["cortex_config"] = module
    spec.loader.exec_module(module)

    config_dict = {}
    if hasattr(module, "CONFIG"):
        config_dict = module.CONFIG
    elif hasattr(module, "config"):
        config_dict = module.config

    custom_tools = {}
    for name in dir(module):
        if name.startswith("custom_tool_"):
            tool_name = name[12:]  # Remove "custom_tool_" prefix
            custom_tools[tool_name] = getattr(module, name)

    return config_dict, custom_tools


def dict_to_config(data: dict[str, Any], storage_root: Path) -> CortexConfig:
    """Convert dictionary to CortexConfig."""
    config = CortexConfig(storage_root=storage_root)

    if "directories" in data:
        dirs = data["directories"]
        if "branch_notes" in dirs:
            config.branch_notes_dir = dirs["branch_notes"]
        if "context" in dirs:
            config.context_dir = dirs["context"]
        if "knowledge" in dirs:
            config.knowledge_dir = dirs["knowledge"]
        if "checklists" in dirs:
            config.checklists_dir = dirs["checklists"]

    if "defaults" in data:
        defaults = data["defaults"]
        if "project" in defaults:
            config.default_project = defaults["project"]
        if "branch" in defaults:
            config.default_branch = defaults["branch"]
        if "author" in defaults:
            config.default_author = defaults["author"]
        if "lock_timeout" in defaults:
            config.lock_timeout = float(defaults["lock_timeout"])

    if "gap_analysis" in data:
        gaps = data["gap_analysis"]
        if "max_depth" in gaps:
            config.gap_analysis.max_depth = int(gaps["max_depth"])
        if "include_tests" in gaps:
            config.gap_analysis.include_tests = bool(gaps["include_tests"])
        if "include_node_modules" in gaps:
            config.gap_analysis.include_node_modules = bool(gaps["include_node_modules"])
        if "file_extensions" in gaps:
            config.gap_analysis.file_extensions = list(gaps["file_extensions"])

    if "vocabulary" in data:
        vocab = data["vocabulary"]
        if "technology" in vocab:
            config.technology_keywords = [t.lower() for t in vocab["technology"]]
        if "production" in vocab:
            config.production_terms = [t.lower() for t in vocab["production"]]
        if "development" in vocab:
            config.development_terms = [t.lower() for t in vocab["development"]]

    return config


def find_config_file(storage_root: Path) -> Optional[Path]:
    """Find configuration file in the storage root.

    Search order:
    1. cortex_config.py (most flexible)
    2. cortex_config.toml
    3. cortex_config.json
    4. .cortex.toml
    5. .cortex.json
    """
    candidates = [
        "cortex_config.py",
        "cortex_config.toml",
        "cortex_config.json",
        ".cortex.toml",
        ".cortex.json",
    ]

    for name in candidates:
        path = storage_root / name
        if path.exists():
            return path

    return None


def load_config(storage_root: Optional[Path] = None, config_path: Optional[Path] = None) -> CortexConfig:
    """Load cortex configuration.

    Args:
        storage_root: Root directory for all documents (default from environment)
        config_path: Optional explicit path to config file

    Returns:
        CortexConfig instance
    """
    if storage_root is None:
        storage_root = default_storage_root()

    if config_path is None:
        config_path = find_config_file(storage_root)

    if config_path is None:
        # No config file - use defaults
        return CortexConfig(storage_root=storage_root)

    suffix = config_path.suffix.lower()

    if suffix == ".py":
        config_dict, custom_tools = load_python_config(config_path)
        config = dict_to_config(config_dict, storage_root)
        config.custom_tools = custom_tools
        return config

    elif suffix == ".toml":
        config_dict = load_toml_config(config_path)
        return dict_to_config(config_dict, storage_root)

    elif suffix == ".json":
        config_dict = load_json_config(config_path)
        return dict_to_config(config_dict, storage_root)

    else:
        raise ValueError(f"Unsupported config file type: {suffix}")
