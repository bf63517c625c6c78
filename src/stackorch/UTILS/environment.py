"""
Helpers for Environment values: plain ``Dict[str, str]`` mappings of
variable name to value, passed explicitly into every operation.
"""
import os
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

Environment = Dict[str, str]


def merge_environments(*layers: Optional[Mapping[str, str]]) -> Environment:
    """
    Merges environments left to right; later layers win on conflicting keys.

    Inputs are never mutated, a new mapping is always returned.

    :param layers: Environments in increasing precedence. ``None`` is skipped.
    :return: The merged environment.
    """
    merged: Environment = {}
    for layer in layers:
        if layer:
            merged.update({str(k): str(v) for k, v in layer.items()})
    return merged


def load_env_file(env_path: str) -> Environment:
    """
    Reads a .env file into an Environment.

    Variables declared without a value (``KEY`` alone on a line) are dropped.

    :param env_path: Path to the .env file.
    :return: The variables defined in the file.
    :raises FileNotFoundError: If the file does not exist.
    """
    if not os.path.exists(env_path):
        raise FileNotFoundError(env_path)
    return {k: v for k, v in dotenv_values(env_path).items() if v is not None}


def describe_keys(environment: Mapping[str, str]) -> str:
    """Comma separated, sorted variable names. Values are never logged."""
    return ", ".join(sorted(environment)) or "<empty>"
