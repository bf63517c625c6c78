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
Starting and terminating standalone containers through the docker CLI.
"""
import logging
import subprocess
from typing import List, Optional

from ..MODELS.service_definition import RunningContainer, ServiceDescriptor
from ..exceptions import ContainerRuntimeError

logger = logging.getLogger(__name__)


class ContainerRunner:
    """
    Runs a single ServiceDescriptor as a detached container.
    """
    def __init__(self, docker_command: Optional[List[str]] = None):
        """
        Initializes the runner.

        Args:
            docker_command: Binary and leading arguments. Defaults to ``docker``.
        """
        self.docker_command = list(docker_command or ["docker"])

    def _run(self, image: str, args: List[str]) -> subprocess.CompletedProcess:
        command = self.docker_command + args
        logger.debug("Running %s", " ".join(command))
        try:
            return subprocess.run(command, capture_output=True, text=True, shell=False)
        except OSError as e:
            raise ContainerRuntimeError(image, f"{command[0]}: {e}") from e

    def start(self, service: ServiceDescriptor) -> RunningContainer:
        """
        Starts a container for the service.

        Non-daemon containers are removed by the runtime once they stop.

        Args:
            service: The service to run.

        Returns:
            RunningContainer: Handle on the started container.
        """
        args = ["run", "-d"]
        if not service.daemon:
            args.append("--rm")
        for port in service.expose_ports():
            args.extend(["-p", port])
        args.append(service.image_tag)

        result = self._run(service.image_tag, args)
        if result.returncode != 0:
            raise ContainerRuntimeError(service.image_tag, (result.stderr or result.stdout).strip())

        container_id = result.stdout.strip().splitlines()[-1] if result.stdout.strip() else ""
        if not container_id:
            raise ContainerRuntimeError(service.image_tag, "runtime did not report a container id")
        return RunningContainer(container_id=container_id, image=service.image_tag)

    def terminate(self, container: RunningContainer) -> None:
        """
        Force-removes the container and its anonymous volumes.

        A container that no longer exists counts as terminated.

        Args:
            container: The container to terminate.
        """
        result = self._run(container.image, ["rm", "-f", "-v", container.container_id])
        if result.returncode != 0 and "No such container" not in (result.stderr or ""):
            raise ContainerRuntimeError(container.image, (result.stderr or result.stdout).strip())
