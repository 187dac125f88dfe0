"""
This module manages configuration options for simdex. It supports loading configuration
from a global file (`~/.config/simdex/config.toml`) and a project configuration in
`simdex.toml` or the standard `pyproject.toml` (table `[tool.simdex]`).

The configuration is structured using dataclasses, allowing hierarchical and
type-validated configuration handling.

Unlike a module level settings object, `load_config` returns a fresh `Config` every
time it is called. Callers pass the values they need (most importantly the database
file) explicitly into the index and the api functions.

Key Features:
- Detects the root directory of the project based on common anchor files.
- Reads configuration from global and project-specific TOML files.
- Provides structured access to configuration values via dataclasses.
- Supports nested dictionary updates for merging configuration sources.
"""

import sys
from collections.abc import MutableMapping
from dataclasses import dataclass, field, fields
from itertools import chain
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Iterable,
    Literal,
    Optional,
    Union,
    get_type_hints,
)

from simdex import SIMDEX_LOGGER as log
from simdex._typing import StrPath
from simdex.constants import DEFAULT_MAX_DEPTH

if TYPE_CHECKING:
    from typing_extensions import Self

if sys.version_info < (3, 11):
    import tomli  # type: ignore
else:
    import tomllib as tomli


__all__ = [
    "Config",
    "IndexOptions",
    "load_config",
]

CONFIG_DIR = Path("~/.config/simdex").expanduser()
CONFIG_FILE = CONFIG_DIR.joinpath("config.toml")
LOCAL_DIR = Path("~/.local/share/simdex").expanduser()
DATABASE_FILE_NAME = "simdex.sqlite"
# fmt: off
DEFAULT_EXCLUDE_DIRS: frozenset[str] = frozenset({
    # version-control metadata
    ".git", ".hg", ".svn",

    # virtual-envs & package managers
    ".venv", ".tox", ".nox", "node_modules",

    # language-specific caches
    "__pycache__", ".mypy_cache", ".pytest_cache", ".ruff_cache",
})
# fmt: on


def _find_root_dir() -> Optional[Path]:
    """Find the root directory."""

    ANCHORS = [
        ".git",
        "pyproject.toml",
    ]

    cwd = Path.cwd()
    try:
        return next(
            path
            for path in chain([cwd], cwd.parents)
            if any(path.joinpath(anchor).exists() for anchor in ANCHORS)
        )
    except StopIteration:
        log.info("Root directory not found.")
        return None


def _get_global_config(filepath: Path) -> dict[str, Any]:
    """Reads the configuration file and fills the configuration options."""
    try:
        with filepath.open("rb") as f:
            try:
                return tomli.load(f)
            except tomli.TOMLDecodeError as e:
                log.warning(f"Error reading config file: {e}")
                return {}
    except FileNotFoundError:
        log.info("Config file not found or unreadable. Using default settings.")
        return {}


def _get_project_config(project_dir: Path) -> dict[str, Any]:
    """Get the project configuration from simdex.toml or pyproject.toml."""
    simdex_path = project_dir.joinpath("simdex.toml")
    pyproject_path = project_dir.joinpath("pyproject.toml")

    if simdex_path.is_file():
        try:
            with simdex_path.open("rb") as f:
                return tomli.load(f)
        except tomli.TOMLDecodeError as e:
            log.warning(f"Error reading simdex.toml: {e}")
            return {}

    if pyproject_path.is_file():
        try:
            with pyproject_path.open("rb") as f:
                return tomli.load(f).get("tool", {}).get("simdex", {})
        except tomli.TOMLDecodeError as e:
            log.warning(f"Error reading pyproject.toml: {e}")
            return {}

    log.info("No configuration file found. Using default settings.")
    return {}


def _nested_update(d: MutableMapping, u: MutableMapping) -> MutableMapping:
    for k, v in u.items():
        d[k] = _nested_update(d.get(k, {}), v) if isinstance(v, MutableMapping) else v
    return d


@dataclass
class _Base:
    _field_aliases = {}

    def __repr__(self) -> str:
        s = ""
        max_length = max(len(field.name) for field in fields(self))
        for field in fields(self):
            s += f"{field.name:<{max_length + 1}}: {getattr(self, field.name)}\n"
        return s

    def __getitem__(self, key: str) -> Any:
        """Access the configuration options by key, separated by dots."""
        try:
            current_selection = self
            for attr in key.split("."):
                current_selection = getattr(current_selection, attr)
            return current_selection
        except AttributeError:
            raise KeyError(f"Invalid key path: '{key}'")

    @classmethod
    def from_dict(cls, config: dict, **kwargs) -> "Self":
        """Create an instance of the dataclass from a dictionary of
        configuration values.

        Unknown keys are logged and ignored, aliases are resolved to their field names
        and values of the wrong type are dropped (the default is used instead).

        Args:
            config: A dictionary containing configuration key-value pairs.
            **kwargs: Additional keyword arguments to pass to the class constructor

        Returns:
            An instance of the class initialized with the provided configuration.
        """
        valid_fields = {f.name for f in fields(cls) if f.init}
        aliases = set(cls._field_aliases.keys())

        unknown_keys = set(config) - valid_fields - aliases
        for key in unknown_keys:
            log.info(f"Unknown config key: {key}")

        filtered_config = {k: v for k, v in config.items() if k in valid_fields}
        filtered_config.update(
            {cls._field_aliases[k]: v for k, v in config.items() if k in aliases}
        )

        # Validate type of user and project config values
        resolved_type_hints = get_type_hints(cls)
        for field_def in fields(cls):
            if field_def.name in filtered_config:
                try:
                    if not isinstance(
                        filtered_config[field_def.name],
                        resolved_type_hints[field_def.name],
                    ):
                        log.error(
                            (
                                f"Invalid type for config key '{field_def.name}': {filtered_config[field_def.name]}. "
                                f"Requires {field_def.type} "
                            )
                        )
                        filtered_config.pop(field_def.name)
                except TypeError:
                    # Subscripted generics can't be checked, keep the value
                    log.info(
                        f"Error checking type for config key '{field_def.name}': {filtered_config[field_def.name]}"
                    )

        instance = cls(**{**kwargs, **filtered_config})

        for field_def in fields(cls):
            if field_def.init and field_def.name not in filtered_config:
                log.debug(
                    f"Config key '{field_def.name}' not set; using default: {getattr(instance, field_def.name)}"
                )

        return instance


@dataclass(repr=False)
class Paths(_Base):
    """Paths used by simdex.

    Attributes:
        localDir: The directory where the index database is stored.
    """

    localDir: StrPath = field(default=LOCAL_DIR)

    def __post_init__(self) -> None:
        self.localDir = Path(self.localDir).expanduser()


@dataclass(repr=False)
class IndexOptions(_Base):
    """Index options for simdex.

    Attributes:
        searchPaths: Paths scanned for collections when no root is given.
        maxDepth: How many directory levels below a root are searched for
            collection identifier files.
        excludeDirs: Directory names which are never descended into.
        extendDefaultExcludeDirs: Extends `excludeDirs` instead of replacing it.
        commitPolicy: "all-or-nothing" or "per-collection".
        databaseFileName: The basename of the database file.
        databaseFile: The path to the database file (derived).
    """

    _field_aliases = {
        "paths": "searchPaths",
    }

    searchPaths: Iterable[Union[str, Path]] = field(
        default_factory=lambda: [Path.cwd()]
    )
    maxDepth: int = DEFAULT_MAX_DEPTH
    excludeDirs: Iterable[str] = field(default_factory=lambda: DEFAULT_EXCLUDE_DIRS)
    extendDefaultExcludeDirs: Optional[Iterable[str]] = None
    commitPolicy: Literal["all-or-nothing", "per-collection"] = "all-or-nothing"
    databaseFileName: str = DATABASE_FILE_NAME
    localDir: StrPath = field(default=LOCAL_DIR, repr=False)

    databaseFile: Path = field(init=False)

    def __post_init__(self) -> None:
        self.searchPaths = [Path(p).expanduser() for p in self.searchPaths]
        self.localDir = Path(self.localDir).expanduser()
        self.databaseFile = self.localDir.joinpath(self.databaseFileName)

        if self.extendDefaultExcludeDirs is not None:
            self.excludeDirs = frozenset(
                (*self.excludeDirs, *self.extendDefaultExcludeDirs)
            )
        else:
            self.excludeDirs = frozenset(self.excludeDirs)

        if self.commitPolicy not in ("all-or-nothing", "per-collection"):
            log.error(
                f"Invalid commit policy '{self.commitPolicy}'; using 'all-or-nothing'"
            )
            self.commitPolicy = "all-or-nothing"

    def ensure_local_dir(self) -> Path:
        """Create the directory holding the database file and return the file path."""
        self.databaseFile.parent.mkdir(parents=True, exist_ok=True)
        return self.databaseFile


@dataclass(repr=False, init=False)
class Config(_Base):
    """Configuration of simdex.

    Attributes:
        paths: Paths used by simdex.
        index: Index settings.
    """

    paths: Paths
    index: IndexOptions

    def __init__(self, paths: Paths, index: IndexOptions) -> None:
        self.paths = paths
        self.index = index

    def __repr__(self) -> str:
        s = str()
        for field in fields(self):
            s += f"> {field.name.upper()}\n"
            s += getattr(self, field.name).__repr__()
            s += "\n"
        return s


def load_config(
    project_dir: Optional[StrPath] = None,
    *,
    config_file: Optional[StrPath] = None,
) -> Config:
    """Load the configuration from the global and the project config files.

    Project values take precedence over global ones.

    Args:
        project_dir: Directory to read the project config from. Defaults to the first
            parent of the working directory containing `.git` or `pyproject.toml`.
        config_file: Alternative global config file.
    """
    global_config = _get_global_config(Path(config_file or CONFIG_FILE))
    project_dir = project_dir or _find_root_dir()
    if project_dir:
        project_config = _get_project_config(Path(project_dir))
    else:
        project_config = {}

    config = _nested_update(global_config, project_config)

    paths = Paths.from_dict(config.pop("paths", {}))
    index = IndexOptions.from_dict(config.pop("index", {}), localDir=paths.localDir)

    for key in config.keys():
        log.info(f"Unknown config table: {key}")

    return Config(paths=paths, index=index)
