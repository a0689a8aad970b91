"""
classpy Configuration Management
=================================

Centralized configuration for the classpy inspector using Python
dataclasses and TOML-based persistence.

Every section falls back to its dataclass defaults, so a missing file or a
partial file is always valid.  Unknown keys are ignored so that newer
config files keep working with older code.

References:
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
_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "classpy.toml"


# ========================== Section Configs ================================


@dataclass(frozen=False, slots=True)
class DecoderConfig:
    """Limits and rendering knobs applied by the format decoders.

    ``max_nesting_depth`` bounds Lua prototype recursion so that a hostile
    chunk cannot exhaust the interpreter stack.
    """

    max_file_size: int = 64 * 1024 * 1024  # 64 MiB
    max_nesting_depth: int = 100
    description_limit: int = 100


@dataclass(frozen=False, slots=True)
class ViewConfig:
    """Presentation defaults for the terminal tree view."""

    max_depth: int = 3
    show_offsets: bool = True


@dataclass(frozen=False, slots=True)
class GlobalConfig:
    """Logging and general settings."""

    log_level: str = "INFO"
    log_file: str = ""
    log_json: bool = False
    version: str = "1.0.0"


# =========================== Master Config =================================


@dataclass(frozen=False, slots=True)
class ClasspyConfig:
    """Master configuration aggregating all sections.

    Usage:
        >>> config = ClasspyConfig.load()                  # from default path
        >>> config = ClasspyConfig.load("custom.toml")     # from custom path
        >>> config.decoder.max_nesting_depth
        100
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    view: ViewConfig = field(default_factory=ViewConfig)

    # ------------------------------------------------------------------ #
    #  TOML Loading
    # ------------------------------------------------------------------ #

    @classmethod
    def load(cls, path: str | Path | None = None) -> ClasspyConfig:
        """Load configuration from a TOML file.

        If *path* is ``None`` the loader looks for ``classpy.toml`` in the
        project root and silently uses defaults when it is absent.

        Args:
            path: Filesystem path to a TOML configuration file.

        Returns:
            A fully-populated :class:`ClasspyConfig` instance.

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
            decoder=cls._build_section(DecoderConfig, raw.get("decoder", {})),
            view=cls._build_section(ViewConfig, raw.get("view", {})),
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

def get_config(path: str | Path | None = None) -> ClasspyConfig:
    """Module-level convenience wrapper around :meth:`ClasspyConfig.load`.

    Caches the result so that repeated calls share one instance.
    """
    if not hasattr(get_config, "_cached") or path is not None:
        get_config._cached = ClasspyConfig.load(path)  # type: ignore[attr-defined]
    return get_config._cached  # type: ignore[attr-defined]
