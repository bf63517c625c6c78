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
Error types raised by the orchestration core.
"""
from typing import List, Optional, Sequence


class StackOrchError(Exception):
    """Base class for every error raised by stackorch."""


class ConfigurationError(StackOrchError):
    """Settings could not be loaded or failed validation."""


class InvalidIdentityError(StackOrchError, ValueError):
    """
    A topology name yields an identity that cannot be stored.

    :param identity: The rejected identity key.
    """
    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(
            f"Invalid topology identity {identity!r}: names must start with a letter "
            f"or digit and contain only letters, digits, '.', '_' or '-'"
        )


class DescriptorNotFoundError(StackOrchError):
    """
    No compose descriptor exists at any of the candidate paths.

    :param name: The topology or service name being resolved.
    :param candidates: Every path that was tried, in order.
    """
    def __init__(self, name: str, candidates: Sequence[str]):
        self.name = name
        self.candidates = list(candidates)
        tried = ", ".join(self.candidates) if self.candidates else "<none>"
        super().__init__(f"No compose descriptor found for '{name}'. Tried: {tried}")


class DriverExecutionError(StackOrchError):
    """
    The container-runtime driver returned a non-zero result.
    """
    def __init__(self,
                 command: Sequence[str],
                 descriptor_paths: Sequence[str],
                 message: str,
                 identity: Optional[str] = None,
                 returncode: Optional[int] = None,
                 output: str = ""):
        self.command = list(command)
        self.descriptor_paths = list(descriptor_paths)
        self.message = message
        self.identity = identity
        self.returncode = returncode
        self.output = output
        super().__init__(
            f"Could not run compose command '{' '.join(self.command)}' "
            f"for {identity or 'unknown topology'} with files {self.descriptor_paths}: {message}"
        )


class StateStoreIOError(StackOrchError):
    """Reading or writing a persisted state record failed."""
    def __init__(self, identity: str, operation: str, reason: str = ""):
        self.identity = identity
        self.operation = operation
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"State store could not {operation} record '{identity}'{detail}")


class PartialRemovalError(StackOrchError):
    """
    Removing services from a running topology stopped part way through.

    The topology is left partially removed: ``succeeded`` were removed,
    ``failed`` is the service whose removal raised, and ``skipped`` were never
    attempted.
    """
    def __init__(self,
                 topology: str,
                 succeeded: List[str],
                 failed: str,
                 skipped: List[str],
                 cause: Exception):
        self.topology = topology
        self.succeeded = list(succeeded)
        self.failed = failed
        self.skipped = list(skipped)
        self.cause = cause
        super().__init__(
            f"Could not remove service '{failed}' from '{topology}' "
            f"(removed: {self.succeeded or 'none'}, skipped: {self.skipped or 'none'}): {cause}"
        )


class ContainerRuntimeError(StackOrchError):
    """Starting or terminating a standalone container failed."""
    def __init__(self, image: str, message: str):
        self.image = image
        self.message = message
        super().__init__(f"Container runtime failed for image '{image}': {message}")
