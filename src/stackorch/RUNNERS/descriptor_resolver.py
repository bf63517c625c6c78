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
Location of compose descriptors on disk.
"""
import os
from typing import List, Sequence

from ..CONFIG.settings import Settings
from ..exceptions import DescriptorNotFoundError


class DescriptorResolver:
    """
    Finds the compose descriptor for a profile or a standalone service.

    Profiles live in ``<profiles_dir>/<name>/`` and services in
    ``<services_dir>/<name>/``; within that directory the first of the
    configured descriptor filenames that exists wins.
    """
    def __init__(self, settings: Settings):
        """
        Initializes the resolver.

        :param settings: Provides the profile/service roots and descriptor filenames.
        """
        self.settings = settings

    def base_dir(self, is_profile: bool, name: str) -> str:
        """
        The directory holding the descriptor for ``name``.

        :param is_profile: True to look under the profiles root.
        :param name: The topology or service name.
        """
        root = self.settings.profiles_dir if is_profile else self.settings.services_dir
        return os.path.join(str(root), name)

    def candidates(self, is_profile: bool, name: str) -> List[str]:
        """
        Every path tried for ``name``, in search order.
        """
        base = self.base_dir(is_profile, name)
        return [os.path.join(base, filename) for filename in self.settings.descriptor_filenames]

    def resolve(self, is_profile: bool, name: str, *explicit_filenames: str) -> str:
        """
        Resolves the descriptor path for a topology.

        An explicit filename is taken as given: absolute paths are returned
        unchanged and relative ones are joined to the topology directory.

        :param is_profile: True when ``name`` is a profile.
        :param name: The topology or service name.
        :param explicit_filenames: Optional filename overriding the search.
        :return: Path to the descriptor.
        :raises DescriptorNotFoundError: If no candidate exists.
        """
        explicit = next((f for f in explicit_filenames if f), None)
        if explicit:
            if os.path.isabs(explicit):
                return explicit
            return os.path.join(self.base_dir(is_profile, name), explicit)

        tried = self.candidates(is_profile, name)
        for path in tried:
            if os.path.isfile(path):
                return path
        raise DescriptorNotFoundError(name, tried)

    def resolve_set(self,
                    is_profile: bool,
                    names: Sequence[str],
                    *explicit_filenames: str) -> List[str]:
        """
        Resolves a descriptor set, one path per name, keeping caller order.

        The first name is resolved as a profile when ``is_profile`` is set;
        the rest are services layered on top of it. Explicit filenames only
        apply to the first name.

        :param is_profile: Whether the first name is a profile.
        :param names: Topology names, primary first.
        :param explicit_filenames: Optional filename for the primary topology.
        :return: Descriptor paths in the same order as ``names``.
        """
        if not names:
            raise ValueError("at least one topology name is required")

        paths = []
        for i, name in enumerate(names):
            if i == 0:
                paths.append(self.resolve(is_profile, name, *explicit_filenames))
            else:
                paths.append(self.resolve(False, name))
        return paths
