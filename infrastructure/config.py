"""
ENGINE CONFIGURATION - Thresholds and Defaults from TOML

Configuration is read once from config/depgraph.toml (the [engine] table)
into an EngineConfig dataclass and passed explicitly to the mutator and
auditor. There is no global config object.

Usage:
    from infrastructure.config import load_config

    config = load_config()                    # bundled defaults
    config = load_config(Path("my.toml"))     # project override
    auditor = GraphAuditor(collection, config=config)

A missing or unreadable file is not fatal: a warning is emitted and the
built-in defaults are used.
"""
import tomllib
import warnings
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from core.ontology import DEFAULT_DEPENDENCY_TYPE, is_known_dependency_type

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "depgraph.toml"


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class EngineConfig:
    """Tunable thresholds and defaults for the dependency engine."""
    bottleneck_threshold: int = 3           # Direct dependents that make a bottleneck
    long_chain_threshold: int = 5           # chain_length that counts as long
    default_dependency_type: str = DEFAULT_DEPENDENCY_TYPE
    added_by: str = "dependency_engine"     # addedBy stamped on new detailed entries
    changelog_path: Optional[Path] = None   # Directory for dependencies.log
    changelog_buffer_size: int = 10000

    def __post_init__(self):
        if self.changelog_path is not None:
            self.changelog_path = Path(self.changelog_path)
        if not is_known_dependency_type(self.default_dependency_type):
            warnings.warn(
                f"Unknown default_dependency_type {self.default_dependency_type!r}, "
                f"using {DEFAULT_DEPENDENCY_TYPE!r}"
            )
            self.default_dependency_type = DEFAULT_DEPENDENCY_TYPE

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        """Copy with some fields replaced."""
        return replace(self, **overrides)


# =============================================================================
# LOADING
# =============================================================================

def load_toml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the raw TOML document.

    Returns:
        Dict with all configuration sections ({} on failure)
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        warnings.warn(f"Failed to load config from TOML ({config_path}): {e}")
        return {}


def config_from_dict(section: Dict[str, Any]) -> EngineConfig:
    """Build an EngineConfig from an [engine] table, ignoring unknown keys."""
    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(section) - known)
    if unknown:
        warnings.warn(f"Ignoring unknown engine config keys: {', '.join(unknown)}")
    return EngineConfig(**{k: v for k, v in section.items() if k in known})


def load_config(path: Optional[Path] = None) -> EngineConfig:
    """Load EngineConfig from the [engine] table of a TOML file."""
    document = load_toml_config(path)
    section = document.get("engine", {})
    if not isinstance(section, dict):
        warnings.warn("[engine] must be a table; using defaults")
        return EngineConfig()
    return config_from_dict(section)
