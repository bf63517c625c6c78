"""
Shared fixtures: a workspace with descriptors on disk and a compose driver
that records invocations instead of talking to Docker.
"""
import os
import pytest
from stackorch.CONFIG.settings import Settings
from stackorch.MANAGERS.service_manager import ServiceManager
from stackorch.MODELS.service_definition import RunningContainer
from stackorch.RUNNERS.compose_driver import ComposeDriver, DriverResult


class RecordingDriver(ComposeDriver):
    """
    Records every invocation. ``failures`` maps a call index to the result
    returned for that call; every other call succeeds.
    """
    def __init__(self, failures=None):
        self.calls = []
        self.failures = dict(failures or {})

    def invoke(self, descriptor_paths, project_name, command, environment):
        index = len(self.calls)
        self.calls.append({
            'descriptor_paths': list(descriptor_paths),
            'project_name': project_name,
            'command': list(command),
            'environment': dict(environment),
        })
        return self.failures.get(index, DriverResult(returncode=0, stdout="done\n"))

    @property
    def commands(self):
        return [call['command'] for call in self.calls]


class FakeContainerRunner:
    """Hands out sequential container ids and remembers what was terminated."""
    def __init__(self):
        self.started = []
        self.terminated = []

    def start(self, service):
        container = RunningContainer(container_id=f"c{len(self.started) + 1}", image=service.image_tag)
        self.started.append(container)
        return container

    def terminate(self, container):
        self.terminated.append(container)


def write_descriptor(root, name, content="services: {}\n", filename="docker-compose.yml"):
    directory = os.path.join(str(root), name)
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, filename)
    with open(path, 'w') as f:
        f.write(content)
    return path


@pytest.fixture
def settings(tmp_path):
    return Settings(workspace=tmp_path / "workspace")


@pytest.fixture
def descriptors(settings):
    """Profiles and services used across the suite."""
    return {
        'fleet': write_descriptor(settings.profiles_dir, 'fleet'),
        'ingest-manager': write_descriptor(settings.profiles_dir, 'ingest-manager'),
        'elastic-agent': write_descriptor(settings.services_dir, 'elastic-agent'),
        'apache': write_descriptor(settings.services_dir, 'apache'),
        'mysql': write_descriptor(settings.services_dir, 'mysql'),
        'kafka': write_descriptor(settings.services_dir, 'kafka'),
    }


@pytest.fixture
def driver():
    return RecordingDriver()


@pytest.fixture
def container_runner():
    return FakeContainerRunner()


@pytest.fixture
def manager(settings, descriptors, driver, container_runner):
    return ServiceManager(settings, driver=driver, container_runner=container_runner)
