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
Models identifying a topology invocation.
"""
from enum import Enum
from pydantic import BaseModel, ConfigDict, field_validator


class TopologyKind(str, Enum):
    """
    Whether a topology is a profile (shared infrastructure for a group of
    services) or a single standalone service.
    """
    PROFILE = "profile"
    SERVICE = "service"


class TopologyIdentity(BaseModel):
    """
    The key under which the state of one topology invocation is persisted.

    A profile and a service sharing a name are distinct identities.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    kind: TopologyKind

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("topology name must not be empty")
        return value

    @classmethod
    def profile(cls, name: str) -> "TopologyIdentity":
        return cls(name=name, kind=TopologyKind.PROFILE)

    @classmethod
    def service(cls, name: str) -> "TopologyIdentity":
        return cls(name=name, kind=TopologyKind.SERVICE)

    @classmethod
    def for_topology(cls, name: str, is_profile: bool) -> "TopologyIdentity":
        """
        Derives the identity for a composition whose first entry is ``name``.

        :param name: The primary topology name.
        :param is_profile: True when ``name`` is a profile.
        :return: The matching identity.
        """
        return cls.profile(name) if is_profile else cls.service(name)

    @property
    def key(self) -> str:
        """The storage key, e.g. ``fleet-profile``."""
        return f"{self.name}-{self.kind.value}"

    def __str__(self) -> str:
        return self.key
