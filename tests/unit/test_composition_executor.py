import pytest
from stackorch.MANAGERS.composition_executor import CompositionExecutor
from stackorch.MANAGERS.state_store import StateStore
from stackorch.MODELS.topology import TopologyIdentity
from stackorch.RUNNERS.compose_driver import DriverResult
from stackorch.RUNNERS.descriptor_resolver import DescriptorResolver
from stackorch.exceptions import DescriptorNotFoundError, DriverExecutionError, InvalidIdentityError


class RecordingSpan:
    def __init__(self, name, attributes):
        self.name = name
        self.attributes = dict(attributes or {})
        self.status = None
        self.ended = False

    def set_attribute(self, key, value):
        self.attributes[key] = value

    def set_status(self, status, description=None):
        self.status = status

    def record_exception(self, exception):
        self.attributes['exception'] = exception

    def end(self):
        self.ended = True


class RecordingTracer:
    def __init__(self):
        self.spans = []

    def start_span(self, name, attributes=None):
        span = RecordingSpan(name, attributes)
        self.spans.append(span)
        return span


@pytest.fixture
def store(settings):
    return StateStore(settings.state_dir)


@pytest.fixture
def executor(settings, descriptors, store, driver):
    return CompositionExecutor(DescriptorResolver(settings), store, driver)


class TestCompositionExecutor:
    """Tests for CompositionExecutor."""

    def test_success_persists_state(self, executor, store, driver, descriptors):
        env = {"STACK_VERSION": "8.0.0"}
        result = executor.execute(True, ["fleet", "elastic-agent"], ["up", "-d"], env)

        assert result.ok
        assert driver.calls == [{
            'descriptor_paths': [descriptors['fleet'], descriptors['elastic-agent']],
            'project_name': 'fleet',
            'command': ['up', '-d'],
            'environment': env,
        }]
        record = store.load(TopologyIdentity.profile("fleet"))
        assert record.descriptor_paths == [descriptors['fleet'], descriptors['elastic-agent']]
        assert record.environment == env

    def test_every_successful_command_refreshes_state(self, executor, store):
        executor.execute(True, ["fleet"], ["up", "-d"], {"A": "1"})
        executor.execute(True, ["fleet", "elastic-agent"], ["exec", "-T", "elastic-agent", "ls"], {"A": "2"})
        assert store.recover(TopologyIdentity.profile("fleet")) == {"A": "2"}

    def test_service_identity(self, executor, store):
        executor.execute(False, ["apache"], ["up", "-d"], {"A": "1"})
        assert store.recover(TopologyIdentity.service("apache")) == {"A": "1"}
        assert store.recover(TopologyIdentity.profile("apache")) == {}

    def test_driver_failure_does_not_touch_state(self, executor, store, driver, descriptors):
        executor.execute(True, ["fleet"], ["up", "-d"], {"A": "1"})
        driver.failures[1] = DriverResult(returncode=1, stderr="service \"kibana\" failed to build")

        with pytest.raises(DriverExecutionError) as excinfo:
            executor.execute(True, ["fleet", "elastic-agent"], ["up", "-d"], {"A": "2"})

        error = excinfo.value
        assert error.descriptor_paths == [descriptors['fleet'], descriptors['elastic-agent']]
        assert error.command == ["up", "-d"]
        assert error.identity == "fleet-profile"
        assert error.returncode == 1
        assert "failed to build" in str(error)
        assert store.recover(TopologyIdentity.profile("fleet")) == {"A": "1"}

    def test_missing_descriptor_skips_driver(self, executor, store, driver):
        with pytest.raises(DescriptorNotFoundError):
            executor.execute(True, ["fleet", "unknown-service"], ["up", "-d"], {})
        assert driver.calls == []
        assert store.load(TopologyIdentity.profile("fleet")) is None

    def test_unstorable_identity_is_rejected_before_driver(self, executor, store, driver, settings):
        directory = settings.profiles_dir / "_base"
        directory.mkdir(parents=True)
        (directory / "docker-compose.yml").write_text("services: {}\n")

        with pytest.raises(InvalidIdentityError) as excinfo:
            executor.execute(True, ["_base"], ["up", "-d"], {"A": "1"})

        assert excinfo.value.identity == "_base-profile"
        assert driver.calls == []
        assert store.list_identities() == []

    def test_persist_false_leaves_record_untouched(self, executor, store):
        executor.execute(True, ["fleet"], ["up", "-d"], {"A": "1"})
        executor.execute(True, ["fleet"], ["down", "--remove-orphans"], {"A": "2"}, persist=False)
        assert store.recover(TopologyIdentity.profile("fleet")) == {"A": "1"}

    def test_caller_environment_is_not_mutated(self, executor, driver):
        env = {"A": "1"}
        executor.execute(True, ["fleet"], ["up", "-d"], env)
        driver.calls[0]['environment']['B'] = "2"
        assert env == {"A": "1"}

    def test_explicit_filename(self, executor, settings, driver):
        executor.execute(True, ["fleet"], ["config"], {}, "docker-compose.ci.yml")
        assert driver.calls[0]['descriptor_paths'][0].endswith("docker-compose.ci.yml")

    def test_requires_names_and_command(self, executor):
        with pytest.raises(ValueError):
            executor.execute(True, [], ["up"], {})
        with pytest.raises(ValueError):
            executor.execute(True, ["fleet"], [], {})

    def test_span_covers_invocation(self, executor):
        tracer = RecordingTracer()
        executor.execute(True, ["fleet"], ["up", "-d"], {}, tracer=tracer)
        span = tracer.spans[0]
        assert span.name == "docker-compose up"
        assert span.attributes['span.type'] == "docker-compose.invoke"
        assert span.attributes['identity'] == "fleet-profile"
        assert span.status == "ok"
        assert span.ended
        assert 'duration_ms' in span.attributes

    def test_span_marks_failure(self, executor, driver):
        tracer = RecordingTracer()
        driver.failures[0] = DriverResult(returncode=2, stderr="boom")
        with pytest.raises(DriverExecutionError):
            executor.execute(True, ["fleet"], ["up", "-d"], {}, tracer=tracer)
        assert tracer.spans[0].status == "error"
        assert tracer.spans[0].ended
