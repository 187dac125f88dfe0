import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Literal

import lazy_loader as lazy

__author__ = "florez@ethz.ch"
__copyright__ = ""
__license__ = "MIT"
try:
    __version__ = version("simdex")
except PackageNotFoundError:  # not installed
    __version__ = "unknown"

SIMDEX_LOGGER = logging.getLogger("simdex")
STREAM_HANDLER = logging.StreamHandler()


def _add_stream_handler(logger: logging.Logger) -> None:
    formatter = logging.Formatter(
        "[%(asctime)s] %(name)s: %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    STREAM_HANDLER.setFormatter(formatter)
    logger.addHandler(STREAM_HANDLER)


_add_stream_handler(SIMDEX_LOGGER)


def set_log_level(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
) -> None:
    SIMDEX_LOGGER.setLevel(level)


# We use lazy_loader to avoid upfront imports of submodules (h5py, sqlalchemy)
# while still providing a consistent API for the user.
# BUT: keep stub file of this module up-to-date with the actual imports
__getattr__, __dir__, __all__ = lazy.attach(
    __name__,
    [],
    {
        "api": [
            "scan",
            "list_collections",
            "list_parameter_keys",
            "create_collection",
            "resolve_path",
        ],
        "index": ["Index", "CommitPolicy", "ScanReport"],
        "_config": ["load_config"],
    },
)
