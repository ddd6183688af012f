"""
Configuration file loading for cade.

Loads .cade.yaml from project root or home directory.
Config values provide defaults that can be overridden per call.

Example:
    defaults:
      source: claude
      model: claude-sonnet-4-20250514
    session:
      permission_mode: acceptEdits
      max_turns: 5
      allowed_tools: [Read, Grep]
    audit:
      directory: .cade/audit
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

CONFIG_FILENAME = ".cade.yaml"

PERMISSION_MODES = ("default", "acceptEdits", "plan", "bypassPermissions")


@dataclass
class ConfigDefaults:
    """Default values from config file."""
    source: str = "claude"
    model: Optional[str] = None


@dataclass
class SessionConfig:
    """Per-session settings threaded into every upstream query."""
    model: Optional[str] = None
    permission_mode: str = "default"
    max_turns: Optional[int] = None
    allowed_tools: list[str] = field(default_factory=list)
    system_prompt: Optional[str] = None
    cwd: Optional[str] = None


@dataclass
class ConfigAudit:
    """Audit log settings from config file."""
    directory: str = ".cade/audit"


@dataclass
class Config:
    """Loaded configuration."""
    defaults: ConfigDefaults = field(default_factory=ConfigDefaults)
    session: SessionConfig = field(default_factory=SessionConfig)
    audit: ConfigAudit = field(default_factory=ConfigAudit)
    source_path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: dict, source_path: Optional[Path] = None) -> "Config":
        """Create Config from parsed YAML dict."""
        config = cls(source_path=source_path)

        # Defaults
        if "defaults" in data and isinstance(data["defaults"], dict):
            defaults = data["defaults"]
            config.defaults.source = defaults.get("source", config.defaults.source)
            config.defaults.model = defaults.get("model", config.defaults.model)

        # Session
        if "session" in data and isinstance(data["session"], dict):
            sess = data["session"]
            mode = sess.get("permission_mode", config.session.permission_mode)
            if mode not in PERMISSION_MODES:
                raise ValueError(
                    f"Invalid permission_mode: {mode}. Expected one of {', '.join(PERMISSION_MODES)}"
                )
            config.session.permission_mode = mode
            max_turns = sess.get("max_turns")
            if max_turns is not None:
                config.session.max_turns = int(max_turns)
            tools = sess.get("allowed_tools") or []
            if isinstance(tools, str):
                tools = [t.strip() for t in tools.split(",") if t.strip()]
            config.session.allowed_tools = list(tools)
            config.session.system_prompt = sess.get("system_prompt")
            config.session.cwd = sess.get("cwd")

        # Audit
        if "audit" in data and isinstance(data["audit"], dict):
            config.audit.directory = data["audit"].get("directory", config.audit.directory)

        config.session.model = config.defaults.model
        return config


# Global cached config
_cached_config: Optional[Config] = None


def load_config(path: Optional[Path] = None, use_cache: bool = True) -> Config:
    """Load .cade.yaml from project root or home.

    Search order:
    1. Explicit path if provided
    2. .cade.yaml in current directory
    3. .cade.yaml in parent directories (up to git root or /)
    4. ~/.cade.yaml in home directory

    Returns:
        Loaded Config, or default Config if no file found
    """
    global _cached_config

    if use_cache and _cached_config is not None:
        return _cached_config

    config_path = None

    if path and path.exists():
        config_path = path
    else:
        search_dir = Path.cwd()
        while search_dir != search_dir.parent:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                config_path = candidate
                break
            # Stop at git root
            if (search_dir / ".git").exists():
                break
            search_dir = search_dir.parent

        if config_path is None:
            home_config = Path.home() / CONFIG_FILENAME
            if home_config.exists():
                config_path = home_config

    if config_path is None:
        config = Config()
    else:
        try:
            data = yaml.safe_load(config_path.read_text())
            config = Config.from_dict(data or {}, source_path=config_path)
        except (yaml.YAMLError, OSError, ValueError) as e:
            logging.getLogger("cade.core.config").warning(
                f"Failed to load config from {config_path}: {e}"
            )
            config = Config()

    if use_cache:
        _cached_config = config

    return config


def clear_config_cache() -> None:
    """Clear the cached config (useful for testing)."""
    global _cached_config
    _cached_config = None


def get_audit_directory() -> str:
    return load_config().audit.directory
