"""
StalkerKit Configuration Management
====================================

Centralized configuration for the StalkerKit toolkit using Python
dataclasses and TOML-based persistence.

Every section maps to a ``[table]`` in ``config.toml``; keys that are
missing fall back to the dataclass defaults, and unknown keys are
ignored so that older installs can read newer files.

References:
    - Wiggins, A. (2011). The Twelve-Factor App. https://12factor.net/
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Default configuration file path relative to the project root
# ---------------------------------------------------------------------------
_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "config.toml"

# MAG-series embedded browser identity; portals silently refuse other agents.
DEFAULT_USER_AGENT: str = (
    "Mozilla/5.0 (QtEmbedded; U; Linux; C) AppleWebKit/533.3 "
    "(KHTML, like Gecko) MAG200 stbapp ver: 2 rev: 250 Safari/533.3"
)
DEFAULT_X_USER_AGENT: str = "Model: MAG250; Link: WiFi"


# ========================== Section Configs ================================


@dataclass(frozen=False, slots=True)
class PortalConfig:
    """Request-shaping parameters for every Stalker portal call.

    ``user_agent`` and ``x_user_agent`` identify the client as a MAG
    set-top box. ``request_timeout`` bounds each individual GET.
    """

    timezone: str = "UTC"
    language: str = "en"
    request_timeout: float = 10.0
    user_agent: str = DEFAULT_USER_AGENT
    x_user_agent: str = DEFAULT_X_USER_AGENT


@dataclass(frozen=False, slots=True)
class DiscoveryConfig:
    """Limits for the brute-force MAC discovery loop."""

    max_attempts: int = 100
    attempt_timeout: float = 5.0
    attempt_delay: float = 0.1
    sample_size: int = 10
    prefix: str = ""


@dataclass(frozen=False, slots=True)
class BatchConfig:
    """Limits for batch credential auditing."""

    max_batch_size: int = 20
    default_count: int = 5


# =========================== Global Settings ===============================


@dataclass(frozen=False, slots=True)
class GlobalConfig:
    """Global settings: logging verbosity, output directory, version."""

    log_level: str = "INFO"
    log_file: str = ""
    log_json: bool = False
    output_dir: str = "output"
    debug: bool = False
    version: str = "1.0.0"


# =========================== Master Config =================================


@dataclass(frozen=False, slots=True)
class StalkerKitConfig:
    """Master configuration aggregating all sections.

    Usage:
        >>> config = StalkerKitConfig.load()                # from default path
        >>> config = StalkerKitConfig.load("custom.toml")   # from custom path
        >>> print(config.discovery.max_attempts)
        100
        >>> print(config.portal.timezone)
        'UTC'
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    portal: PortalConfig = field(default_factory=PortalConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)

    # ------------------------------------------------------------------ #
    #  TOML Loading
    # ------------------------------------------------------------------ #

    @classmethod
    def load(cls, path: str | Path | None = None) -> StalkerKitConfig:
        """Load configuration from a TOML file.

        If *path* is ``None`` the loader looks for ``config.toml`` in the
        project root.  Missing keys gracefully fall back to dataclass
        defaults -- no ``KeyError`` is raised.

        Args:
            path: Filesystem path to a TOML configuration file.
                  Defaults to ``<project_root>/config.toml``.

        Returns:
            A fully-populated :class:`StalkerKitConfig` instance.

        Raises:
            FileNotFoundError: If the specified path does not exist
                *and* was explicitly provided by the caller.
        """
        config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH

        if not config_path.exists():
            if path is not None:
                raise FileNotFoundError(
                    f"Configuration file not found: {config_path}"
                )
            return cls()

        with open(config_path, "rb") as fh:
            raw: dict[str, Any] = tomllib.load(fh)

        return cls(
            global_settings=cls._build_section(GlobalConfig, raw.get("global", {})),
            portal=cls._build_section(PortalConfig, raw.get("portal", {})),
            discovery=cls._build_section(DiscoveryConfig, raw.get("discovery", {})),
            batch=cls._build_section(BatchConfig, raw.get("batch", {})),
        )

    # ------------------------------------------------------------------ #
    #  Serialisation helpers
    # ------------------------------------------------------------------ #

    def to_dict(self) -> dict[str, Any]:
        """Serialise the entire configuration tree to a plain dictionary."""
        return asdict(self)

    # ------------------------------------------------------------------ #
    #  Internal helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _build_section(cls: type, data: dict[str, Any]) -> Any:
        """Instantiate a dataclass *cls* using only the keys it declares."""
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}  # type: ignore[attr-defined]
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)


# ========================= Module-level convenience ========================

def get_config(path: str | Path | None = None) -> StalkerKitConfig:
    """Module-level convenience wrapper around :meth:`StalkerKitConfig.load`.

    Caches the result so that repeated calls share one instance.
    """
    if not hasattr(get_config, "_cached") or path is not None:
        get_config._cached = StalkerKitConfig.load(path)  # type: ignore[attr-defined]
    return get_config._cached  # type: ignore[attr-defined]
