from pathlib import Path
from typing import Dict, TypeVar, Union

from typing_extensions import ParamSpec, TypeAlias

StrPath: TypeAlias = Union[str, Path]
_T = TypeVar("_T")
_P = ParamSpec("_P")

ParameterValue: TypeAlias = Union[int, float, str]
"""The scalar types a run parameter can take in the index."""

ParametersT: TypeAlias = Dict[str, ParameterValue]
