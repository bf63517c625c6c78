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
Execution of compose commands against resolved descriptor sets.
"""
import logging
from typing import Mapping, Optional, Sequence

from ..MODELS.topology import TopologyIdentity
from ..RUNNERS.compose_driver import ComposeDriver, DriverResult
from ..RUNNERS.descriptor_resolver import DescriptorResolver
from ..UTILS.environment import describe_keys, merge_environments
from ..UTILS.tracing import Tracer, start_span
from ..exceptions import DriverExecutionError
from .state_store import StateStore

logger = logging.getLogger(__name__)


class CompositionExecutor:
    """
    Runs a compose command for a list of topologies and records the result.

    Every successful command, not only ``up``, refreshes the persisted state
    of the invocation identity. Failed commands never touch it.
    """
    def __init__(self,
                 resolver: DescriptorResolver,
                 state_store: StateStore,
                 driver: ComposeDriver):
        """
        :param resolver: Locates the descriptor of each topology.
        :param state_store: Receives the applied descriptor set and environment.
        :param driver: The container-runtime driver.
        """
        self.resolver = resolver
        self.state_store = state_store
        self.driver = driver

    def execute(self,
                is_profile: bool,
                names: Sequence[str],
                command: Sequence[str],
                environment: Optional[Mapping[str, str]] = None,
                *explicit_filenames: str,
                tracer: Optional[Tracer] = None,
                persist: bool = True) -> DriverResult:
        """
        Resolves the descriptor set for ``names`` and runs ``command`` on it.

        :param is_profile: True when the first name is a profile.
        :param names: Topology names, primary first, in layering order.
        :param command: Compose argument vector, e.g. ``["up", "-d"]``.
        :param environment: Variables passed to the driver.
        :param explicit_filenames: Optional descriptor filename for the primary topology.
        :param tracer: Optional tracer receiving a span for the driver call.
        :param persist: Refresh the state record on success. Teardown passes
            False because it releases the record right after.
        :return: The driver result.
        :raises InvalidIdentityError: If the primary name cannot be stored as an identity.
        :raises DescriptorNotFoundError: If a descriptor cannot be located.
        :raises DriverExecutionError: If the driver reports a failure.
        """
        if not names:
            raise ValueError("at least one topology name is required")
        if not command:
            raise ValueError("a compose command is required")

        identity = TopologyIdentity.for_topology(names[0], is_profile)
        # Checked before the driver runs so a started topology is always recordable
        self.state_store.key_for(identity)
        env = merge_environments(environment)

        with start_span(tracer, f"docker-compose {command[0]}", "docker-compose.invoke",
                        {"identity": identity.key, "command": " ".join(command)}):
            paths = self.resolver.resolve_set(is_profile, names, *explicit_filenames)
            result = self.driver.invoke(paths, names[0], command, env)
            if not result.ok:
                logger.error("Could not run compose command %s for %s: %s",
                             command, identity, result.message)
                raise DriverExecutionError(
                    command, paths, result.message,
                    identity=identity.key,
                    returncode=result.returncode,
                    output=result.stdout,
                )

        if persist:
            self.state_store.update(identity, paths, env)

        logger.debug("Docker compose executed: cmd=%s files=%s env=[%s] identity=%s",
                     command, paths, describe_keys(env), identity)
        return result
