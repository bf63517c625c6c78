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
Container-runtime drivers that apply a compose command to a descriptor set.
"""
import logging
import os
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass
class DriverResult:
    """Outcome of one driver invocation."""
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def message(self) -> str:
        """The most useful text explaining a failure."""
        text = (self.stderr or self.stdout).strip()
        return text or f"exit code {self.returncode}"


class ComposeDriver(ABC):
    """
    Applies a compose command to an ordered set of descriptor files.
    """

    @abstractmethod
    def invoke(self,
               descriptor_paths: Sequence[str],
               project_name: str,
               command: Sequence[str],
               environment: Mapping[str, str]) -> DriverResult:
        """
        Runs ``command`` against the descriptors.

        :param descriptor_paths: Descriptor files, later ones override earlier ones.
        :param project_name: Compose project name.
        :param command: Argument vector, e.g. ``["up", "-d"]``.
        :param environment: Variables available for substitution in the descriptors.
        :return: The result; failures are reported, not raised.
        """


class LocalComposeDriver(ComposeDriver):
    """
    Drives the local ``docker compose`` (or ``docker-compose``) binary.
    """
    def __init__(self, compose_command: Optional[List[str]] = None, working_dir: Optional[str] = None):
        """
        :param compose_command: Binary and leading arguments. Defaults to ``docker compose``.
        :param working_dir: Directory to run the binary in.
        """
        self.compose_command = list(compose_command or ["docker", "compose"])
        self.working_dir = working_dir

    def build_command(self,
                      descriptor_paths: Sequence[str],
                      project_name: str,
                      command: Sequence[str]) -> List[str]:
        args = list(self.compose_command)
        for path in descriptor_paths:
            args.extend(["-f", path])
        args.extend(["-p", project_name.lower()])
        args.extend(command)
        return args

    def invoke(self,
               descriptor_paths: Sequence[str],
               project_name: str,
               command: Sequence[str],
               environment: Mapping[str, str]) -> DriverResult:
        args = self.build_command(descriptor_paths, project_name, command)
        env: Dict[str, str] = os.environ.copy()
        env.update(environment)

        logger.debug("Running %s", " ".join(args))
        try:
            completed = subprocess.run(
                args,
                env=env,
                cwd=self.working_dir,
                capture_output=True,
                text=True,
                # Avoid shell=True for security reasons (CWE-78)
                shell=False,
            )
        except OSError as e:
            # Binary missing or not executable
            return DriverResult(returncode=127, stderr=f"{args[0]}: {e}")

        return DriverResult(
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
