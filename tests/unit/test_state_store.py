import gc
import os
import threading
import pytest
from stackorch.MANAGERS.state_store import StateStore
from stackorch.MODELS.topology import TopologyIdentity
from stackorch.exceptions import InvalidIdentityError, StateStoreIOError


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path / "state")


class TestStateStore:
    """Tests for StateStore."""

    def test_recover_unknown_identity_is_empty(self, store):
        assert store.recover(TopologyIdentity.profile("never-seen")) == {}
        assert store.load("never-seen-profile") is None

    def test_update_then_recover(self, store):
        identity = TopologyIdentity.profile("fleet")
        store.update(identity, ["/p/fleet/docker-compose.yml"], {"A": "1"})
        assert store.recover(identity) == {"A": "1"}
        record = store.load(identity)
        assert record.identity == "fleet-profile"
        assert record.descriptor_paths == ["/p/fleet/docker-compose.yml"]

    def test_last_write_wins_without_merging(self, store):
        identity = TopologyIdentity.profile("fleet")
        store.update(identity, ["/a.yml"], {"A": "1", "B": "2"})
        store.update(identity, ["/a.yml", "/b.yml"], {"C": "3"})
        assert store.recover(identity) == {"C": "3"}
        assert store.load(identity).descriptor_paths == ["/a.yml", "/b.yml"]

    def test_destroy_then_recover(self, store):
        identity = TopologyIdentity.service("apache")
        store.update(identity, ["/a.yml"], {"A": "1"})
        store.destroy(identity)
        assert store.recover(identity) == {}

    def test_destroy_missing_is_noop(self, store):
        store.destroy(TopologyIdentity.profile("nothing"))
        store.destroy(TopologyIdentity.profile("nothing"))

    def test_identities_are_independent(self, store):
        store.update(TopologyIdentity.profile("apache"), [], {"KIND": "profile"})
        store.update(TopologyIdentity.service("apache"), [], {"KIND": "service"})
        assert store.recover(TopologyIdentity.profile("apache")) == {"KIND": "profile"}
        assert store.recover(TopologyIdentity.service("apache")) == {"KIND": "service"}

    def test_survives_restart(self, tmp_path):
        StateStore(tmp_path / "state").update("fleet-profile", ["/a.yml"], {"A": "1"})
        assert StateStore(tmp_path / "state").recover("fleet-profile") == {"A": "1"}

    def test_recover_returns_a_copy(self, store):
        store.update("fleet-profile", [], {"A": "1"})
        env = store.recover("fleet-profile")
        env["A"] = "changed"
        assert store.recover("fleet-profile") == {"A": "1"}

    def test_list_identities(self, store):
        assert store.list_identities() == []
        store.update("fleet-profile", [], {})
        store.update("apache-service", [], {})
        assert store.list_identities() == ["apache-service", "fleet-profile"]

    def test_corrupt_record_is_an_error(self, store):
        store.state_dir.mkdir(parents=True)
        (store.state_dir / "fleet-profile.yml").write_text("identity: [unclosed\n")
        with pytest.raises(StateStoreIOError):
            store.recover("fleet-profile")

    def test_empty_record_is_an_error(self, store):
        store.state_dir.mkdir(parents=True)
        (store.state_dir / "fleet-profile.yml").write_text("")
        with pytest.raises(StateStoreIOError):
            store.recover("fleet-profile")

    def test_transient_read_failure_is_retried(self, store, monkeypatch):
        store.update("fleet-profile", [], {"A": "1"})
        real_read = StateStore._read
        failures = []

        def flaky(self, key):
            if not failures:
                failures.append(key)
                raise OSError("device busy")
            return real_read(self, key)

        monkeypatch.setattr(StateStore, "_read", flaky)
        assert store.recover("fleet-profile") == {"A": "1"}
        assert failures == ["fleet-profile"]

    def test_persistent_read_failure_is_not_empty(self, tmp_path, monkeypatch):
        store = StateStore(tmp_path / "state", read_attempts=2)

        def broken(self, key):
            raise OSError("storage unavailable")

        monkeypatch.setattr(StateStore, "_read", broken)
        with pytest.raises(StateStoreIOError) as excinfo:
            store.recover("fleet-profile")
        assert "storage unavailable" in str(excinfo.value)

    def test_write_failure(self, tmp_path):
        blocker = tmp_path / "state"
        blocker.write_text("not a directory")
        store = StateStore(blocker)
        with pytest.raises(StateStoreIOError):
            store.update("fleet-profile", [], {"A": "1"})

    def test_no_temporary_files_left_behind(self, store):
        store.update("fleet-profile", ["/a.yml"], {"A": "1"})
        store.update("fleet-profile", ["/a.yml"], {"A": "2"})
        assert os.listdir(store.state_dir) == ["fleet-profile.yml"]

    def test_locks_are_released_with_their_identities(self, store):
        for n in range(20):
            store.update(f"topology{n}-profile", [], {"A": "1"})
            store.destroy(f"topology{n}-profile")
        gc.collect()
        assert len(store._locks) == 0

    @pytest.mark.parametrize("key", ["../escape", "", "a/b", ".hidden", "_base-profile"])
    def test_invalid_identity(self, store, key):
        with pytest.raises(InvalidIdentityError):
            store.update(key, [], {})
        with pytest.raises(InvalidIdentityError):
            store.recover(key)

    def test_concurrent_updates_never_tear_a_record(self, store):
        identity = TopologyIdentity.profile("fleet")
        store.update(identity, ["/w0.yml"], {f"K{i}": "w0" for i in range(50)})
        errors = []

        def writer(n):
            for _ in range(20):
                store.update(identity, [f"/w{n}.yml"], {f"K{i}": f"w{n}" for i in range(50)})

        def reader():
            for _ in range(100):
                try:
                    record = store.load(identity)
                except StateStoreIOError as e:
                    errors.append(e)
                    continue
                values = set(record.environment.values())
                # Every key carries the writer tag of the same update
                if len(values) != 1 or record.descriptor_paths != [f"/{values.pop()}.yml"]:
                    errors.append(record)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(1, 4)]
        threads += [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
