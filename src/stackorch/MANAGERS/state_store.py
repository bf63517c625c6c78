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
File-backed store for the state of topology invocations.
Survives process restarts so a later run can extend or tear down a topology.
"""

import logging
import os
import re
import tempfile
import threading
import weakref
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

import yaml
from pydantic import ValidationError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..MODELS.state_record import StateRecord
from ..MODELS.topology import TopologyIdentity
from ..UTILS.environment import Environment
from ..exceptions import InvalidIdentityError, StateStoreIOError

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.-]*$')
_SUFFIX = ".yml"


class StateStore:
    """
    Persists one StateRecord per invocation identity as a YAML document.

    Each update is written to a temporary file and atomically moved over the
    previous record, so readers observe either the old or the new record.
    Writers of the same identity are serialized; different identities never
    share a lock.
    """

    def __init__(self, state_dir: Union[str, Path], read_attempts: int = 3):
        """
        Initialize the state store.

        Args:
            state_dir: Directory holding the records. Created on first write.
            read_attempts: Attempts made for a read hitting an I/O error.
        """
        self.state_dir = Path(state_dir)
        self.read_attempts = read_attempts
        # Entries vanish once no caller holds the lock
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @staticmethod
    def key_for(identity: Union[TopologyIdentity, str]) -> str:
        """
        Storage key for an identity.

        Raises:
            InvalidIdentityError: If the key could escape the state directory.
        """
        key = identity.key if isinstance(identity, TopologyIdentity) else str(identity)
        if not _KEY_PATTERN.match(key):
            raise InvalidIdentityError(key)
        return key

    def _path(self, key: str) -> Path:
        return self.state_dir / f"{key}{_SUFFIX}"

    def _lock(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _read(self, key: str) -> Optional[StateRecord]:
        """Reads a record, None if it does not exist."""
        try:
            with open(self._path(key), 'r') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            return None

        if data is None:
            raise StateStoreIOError(key, "recover", "record is empty")
        return StateRecord(**data)

    def load(self, identity: Union[TopologyIdentity, str]) -> Optional[StateRecord]:
        """
        Load the full record for an identity.

        Args:
            identity: The invocation identity.

        Returns:
            The record, or None if nothing was persisted.

        Raises:
            StateStoreIOError: If the record exists but cannot be read.
        """
        key = self.key_for(identity)
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self.read_attempts),
                wait=wait_exponential(multiplier=0.05, max=1),
                retry=retry_if_exception_type(OSError),
                reraise=True,
            ):
                with attempt:
                    return self._read(key)
        except OSError as e:
            raise StateStoreIOError(key, "recover", str(e)) from e
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise StateStoreIOError(key, "recover", f"corrupt record: {e}") from e

    def recover(self, identity: Union[TopologyIdentity, str]) -> Environment:
        """
        Recover the persisted environment for an identity.

        Args:
            identity: The invocation identity.

        Returns:
            A copy of the persisted environment, empty if no record exists.
        """
        record = self.load(identity)
        if record is None:
            return {}
        return dict(record.environment)

    def update(self,
               identity: Union[TopologyIdentity, str],
               descriptor_paths: Sequence[str],
               environment: Mapping[str, str]) -> StateRecord:
        """
        Replace the record for an identity. Durable once this returns.

        Args:
            identity: The invocation identity.
            descriptor_paths: Descriptor files of the applied composition.
            environment: Environment the composition was applied with.

        Returns:
            The record that was written.
        """
        key = self.key_for(identity)
        record = StateRecord(
            identity=key,
            descriptor_paths=[str(p) for p in descriptor_paths],
            environment=dict(environment),
        )

        with self._lock(key):
            tmp_path = None
            try:
                self.state_dir.mkdir(parents=True, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.state_dir)
                with os.fdopen(fd, 'w') as f:
                    yaml.safe_dump(record.model_dump(), f, default_flow_style=False, sort_keys=False)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self._path(key))
                tmp_path = None
            except OSError as e:
                raise StateStoreIOError(key, "update", str(e)) from e
            finally:
                if tmp_path and os.path.exists(tmp_path):
                    os.unlink(tmp_path)

        logger.debug("Persisted state for %s (%d descriptor(s))", key, len(record.descriptor_paths))
        return record

    def destroy(self, identity: Union[TopologyIdentity, str]) -> None:
        """
        Remove the record for an identity. Removing a missing record is a no-op.
        """
        key = self.key_for(identity)
        with self._lock(key):
            try:
                os.remove(self._path(key))
            except FileNotFoundError:
                return
            except OSError as e:
                raise StateStoreIOError(key, "destroy", str(e)) from e
        logger.debug("Destroyed state for %s", key)

    def list_identities(self) -> List[str]:
        """
        List the identities that currently have a record.
        """
        if not self.state_dir.exists():
            return []
        return sorted(
            p.name[:-len(_SUFFIX)]
            for p in self.state_dir.iterdir()
            if p.is_file() and p.name.endswith(_SUFFIX) and not p.name.startswith('.')
        )
