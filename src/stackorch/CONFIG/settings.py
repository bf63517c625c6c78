# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Settings for the orchestration core, loaded from the environment and
optional .env files.
"""
import os
import shlex
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..exceptions import ConfigurationError

ENV_PREFIX = "STACKORCH_"

DEFAULT_DESCRIPTOR_FILENAMES = [
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
]


class Settings(BaseModel):
    """
    Where descriptors live, where state is persisted, and which binaries
    drive the container runtime.
    """
    workspace: Path = Field(default_factory=lambda: Path.home() / ".stackorch")
    profiles_dir: Optional[Path] = None
    services_dir: Optional[Path] = None
    descriptor_filenames: List[str] = Field(default_factory=lambda: list(DEFAULT_DESCRIPTOR_FILENAMES))
    compose_command: List[str] = Field(default_factory=lambda: ["docker", "compose"])
    docker_command: List[str] = Field(default_factory=lambda: ["docker"])
    state_read_attempts: int = Field(default=3, ge=1)

    @field_validator("descriptor_filenames", "compose_command", "docker_command", mode="before")
    @classmethod
    def _split_strings(cls, value: Any) -> Any:
        # Values coming from the environment are plain strings
        if isinstance(value, str):
            if "," in value:
                return [v.strip() for v in value.split(",") if v.strip()]
            return shlex.split(value)
        return value

    @field_validator("descriptor_filenames", "compose_command", "docker_command")
    @classmethod
    def _not_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("must not be empty")
        return value

    @model_validator(mode="after")
    def _default_roots(self) -> "Settings":
        self.workspace = self.workspace.expanduser()
        if self.profiles_dir is None:
            self.profiles_dir = self.workspace / "compose" / "profiles"
        if self.services_dir is None:
            self.services_dir = self.workspace / "compose" / "services"
        return self

    @property
    def state_dir(self) -> Path:
        """Directory holding one persisted record per invocation identity."""
        return self.workspace / "state"


def _prefixed(values: Mapping[str, Optional[str]]) -> Dict[str, str]:
    """
    Picks the STACKORCH_* entries out of a mapping and strips the prefix.
    """
    picked = {}
    for key, value in values.items():
        if key.startswith(ENV_PREFIX) and value is not None:
            picked[key[len(ENV_PREFIX):].lower()] = value
    return picked


def load_settings(env_file: Optional[str] = None,
                  overrides: Optional[Dict[str, Any]] = None,
                  environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Builds Settings from, in increasing precedence: defaults, an optional
    .env file, the process environment, and explicit overrides.

    :param env_file: Path to a .env file holding STACKORCH_* variables.
    :param overrides: Field values that win over everything else.
    :param environ: Environment to read instead of ``os.environ``.
    :return: Validated settings.
    :raises ConfigurationError: If the file is missing or a value is invalid.
    """
    values: Dict[str, Any] = {}
    if env_file:
        if not os.path.exists(env_file):
            raise ConfigurationError(f"Environment file {env_file} not found")
        values.update(_prefixed(dotenv_values(env_file)))

    values.update(_prefixed(os.environ if environ is None else environ))
    if overrides:
        values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e
