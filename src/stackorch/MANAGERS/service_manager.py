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
Lifecycle management for compose topologies and standalone services.
"""
import logging
from typing import List, Mapping, Optional, Sequence

from ..CONFIG.settings import Settings, load_settings
from ..MODELS.orchestration_config import TopologyConfig
from ..MODELS.service_definition import RunningContainer, ServiceDescriptor
from ..MODELS.state_record import StateRecord
from ..MODELS.topology import TopologyIdentity
from ..PARSERS.compose_parser import ComposeParser
from ..RUNNERS.compose_driver import ComposeDriver, DriverResult, LocalComposeDriver
from ..RUNNERS.container_runner import ContainerRunner
from ..RUNNERS.descriptor_resolver import DescriptorResolver
from ..UTILS.environment import merge_environments
from ..UTILS.tracing import Tracer, start_span
from ..exceptions import PartialRemovalError, StackOrchError
from .composition_executor import CompositionExecutor
from .state_store import StateStore

logger = logging.getLogger(__name__)


class ServiceManager:
    """
    Adds, removes, starts and stops compose topologies on this host.

    Environments are always passed in explicitly; whatever was applied last
    for a topology is recovered from the state store and the caller's values
    are layered on top.
    """
    def __init__(self,
                 settings: Optional[Settings] = None,
                 driver: Optional[ComposeDriver] = None,
                 container_runner: Optional[ContainerRunner] = None,
                 state_store: Optional[StateStore] = None):
        """
        Initializes the service manager.

        :param settings: Settings to use. Loaded from the environment when omitted.
        :param driver: Compose driver. Defaults to the local compose binary.
        :param container_runner: Runner for standalone services.
        :param state_store: Store for invocation state.
        """
        self.settings = settings or load_settings()
        self.resolver = DescriptorResolver(self.settings)
        self.state_store = state_store or StateStore(self.settings.state_dir,
                                                     read_attempts=self.settings.state_read_attempts)
        self.driver = driver or LocalComposeDriver(self.settings.compose_command)
        self.executor = CompositionExecutor(self.resolver, self.state_store, self.driver)
        self.container_runner = container_runner or ContainerRunner(self.settings.docker_command)

    def _merged_environment(self,
                            identity: TopologyIdentity,
                            env: Optional[Mapping[str, str]]) -> dict:
        """Persisted environment for ``identity`` with ``env`` on top."""
        return merge_environments(self.state_store.recover(identity), env)

    def add_services_to_compose(self,
                                profile: str,
                                services: Sequence[str],
                                env: Optional[Mapping[str, str]] = None,
                                *compose_filenames: str,
                                tracer: Optional[Tracer] = None) -> DriverResult:
        """
        Adds services to a running profile without restarting what already runs.

        :param profile: The profile name.
        :param services: Services to attach, layered over the profile descriptor.
        :param env: Caller environment, wins over the persisted one.
        :param compose_filenames: Optional descriptor filename for the profile.
        :param tracer: Optional tracer.
        """
        with start_span(tracer, "Add services to Docker Compose", "docker-compose.services.add",
                        {"profile": profile, "services": list(services)}):
            logger.debug("Adding services %s to profile %s", list(services), profile)
            identity = TopologyIdentity.profile(profile)
            merged = self._merged_environment(identity, env)
            result = self.executor.execute(True, [profile, *services], ["up", "-d"], merged,
                                           *compose_filenames, tracer=tracer)
            logger.info("Services %s added to profile %s", list(services), profile)
            return result

    def remove_services_from_compose(self,
                                     profile: str,
                                     services: Sequence[str],
                                     env: Optional[Mapping[str, str]] = None,
                                     tracer: Optional[Tracer] = None) -> List[str]:
        """
        Removes services from a running profile, one at a time.

        The first failure stops the loop; later services are not attempted.

        :param profile: The profile name.
        :param services: Services to remove.
        :param env: Caller environment, wins over the persisted one.
        :param tracer: Optional tracer.
        :return: The removed services, in order.
        :raises PartialRemovalError: If a removal fails.
        """
        names = [profile, *services]
        identity = TopologyIdentity.profile(profile)
        removed: List[str] = []

        with start_span(tracer, "Remove services from Docker Compose", "docker-compose.services.remove",
                        {"profile": profile, "services": list(services)}):
            for index, service in enumerate(services):
                command = ["rm", "-fvs", service]
                try:
                    merged = self._merged_environment(identity, env)
                    self.executor.execute(True, names, command, merged, tracer=tracer)
                except StackOrchError as e:
                    logger.error("Could not remove service %s from profile %s: %s", service, profile, e)
                    raise PartialRemovalError(
                        profile,
                        succeeded=removed,
                        failed=service,
                        skipped=list(services[index + 1:]),
                        cause=e,
                    ) from e
                removed.append(service)
                logger.debug("Service %s removed from profile %s", service, profile)

        logger.info("Services %s removed from profile %s", removed, profile)
        return removed

    def exec_command_in_service(self,
                                profile: str,
                                component: str,
                                service: str,
                                cmds: Sequence[str],
                                env: Optional[Mapping[str, str]] = None,
                                detach: bool = False,
                                tracer: Optional[Tracer] = None) -> DriverResult:
        """
        Executes a command inside a running service container of a profile.

        :param profile: The profile name.
        :param component: The compose component that defines the service.
        :param service: The compose service to exec into.
        :param cmds: Command and arguments.
        :param env: Caller environment.
        :param detach: Run the command in the background.
        :param tracer: Optional tracer.
        """
        command = ["exec", "-T"]
        if detach:
            command.append("-d")
        command.append(service)
        command.extend(cmds)

        try:
            return self.run_command([profile, component], command, env, tracer=tracer)
        except StackOrchError as e:
            logger.error("Could not execute command %s in service %s: %s", list(cmds), service, e)
            raise

    def run_command(self,
                    names: Sequence[str],
                    command: Sequence[str],
                    env: Optional[Mapping[str, str]] = None,
                    is_profile: bool = True,
                    tracer: Optional[Tracer] = None) -> DriverResult:
        """
        Runs an arbitrary compose command, e.g. ``["logs", "elastic-agent"]``.

        The persisted environment is kept underneath the caller's so the
        refreshed record does not lose variables from earlier invocations.

        :param names: Topology names, primary first.
        :param command: Compose argument vector.
        :param env: Caller environment.
        :param is_profile: True when the first name is a profile.
        :param tracer: Optional tracer.
        :return: The driver result, including captured output.
        """
        if not names:
            raise ValueError("at least one topology name is required")
        identity = TopologyIdentity.for_topology(names[0], is_profile)
        merged = self._merged_environment(identity, env)
        return self.executor.execute(is_profile, names, command, merged, tracer=tracer)

    def run_compose(self,
                    is_profile: bool,
                    names: Sequence[str],
                    env: Optional[Mapping[str, str]] = None,
                    tracer: Optional[Tracer] = None) -> DriverResult:
        """
        Brings a topology up.

        :param is_profile: True when the first name is a profile.
        :param names: Topology names, primary first.
        :param env: Environment for the composition.
        :param tracer: Optional tracer.
        """
        with start_span(tracer, "Starting Docker Compose files", "docker-compose.services.up",
                        {"names": list(names)}):
            result = self.executor.execute(is_profile, names, ["up", "-d"], env, tracer=tracer)
            logger.info("Topology %s is up", list(names))
            return result

    def stop_compose(self,
                     is_profile: bool,
                     names: Sequence[str],
                     tracer: Optional[Tracer] = None) -> DriverResult:
        """
        Tears a topology down with the environment it was brought up with,
        then releases its persisted state.

        The record is not refreshed after ``down``; it goes straight from its
        last applied state to absent.

        :param is_profile: True when the first name is a profile.
        :param names: Topology names, primary first.
        :param tracer: Optional tracer.
        """
        if not names:
            raise ValueError("at least one topology name is required")

        with start_span(tracer, "Stopping Docker Compose files", "docker-compose.services.down",
                        {"names": list(names)}):
            identity = TopologyIdentity.for_topology(names[0], is_profile)
            persisted = self.state_store.recover(identity)
            result = self.executor.execute(is_profile, names, ["down", "--remove-orphans"], persisted,
                                           tracer=tracer, persist=False)
            self.state_store.destroy(identity)
            logger.info("Topology %s is down", list(names))
            return result

    def describe(self,
                 is_profile: bool,
                 names: Sequence[str],
                 env: Optional[Mapping[str, str]] = None) -> TopologyConfig:
        """
        Parses the layered descriptor set of a topology, interpolated with the
        persisted environment and ``env`` on top.
        """
        if not names:
            raise ValueError("at least one topology name is required")
        identity = TopologyIdentity.for_topology(names[0], is_profile)
        paths = self.resolver.resolve_set(is_profile, names)
        parser = ComposeParser(self._merged_environment(identity, env))
        return parser.parse_set(paths)

    def state(self, is_profile: bool, name: str) -> Optional[StateRecord]:
        """The persisted record of a topology, None when it is not recorded."""
        return self.state_store.load(TopologyIdentity.for_topology(name, is_profile))

    def run(self, service: ServiceDescriptor) -> RunningContainer:
        """
        Starts a container for a standalone service.

        A container the descriptor already owns is terminated first, so a
        descriptor never leaves an orphan behind.

        :param service: The service to run.
        :return: The running container, also attached to ``service.running``.
        """
        if service.running is not None:
            logger.warning("Replacing running container %s for %s",
                           service.running.container_id, service.image_tag)
            self.destroy(service)

        container = self.container_runner.start(service)
        service.running = container
        logger.info("Started container %s for %s", container.container_id, service.image_tag)
        return container

    def destroy(self, service: ServiceDescriptor) -> None:
        """
        Terminates the container a service owns. No-op if it owns none.
        """
        if service.running is None:
            return
        container = service.running
        self.container_runner.terminate(container)
        service.running = None
        logger.info("Terminated container %s for %s", container.container_id, service.image_tag)
