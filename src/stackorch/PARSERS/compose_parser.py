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
Parsers for Docker Compose YAML files and layered descriptor sets.
"""
import yaml
from typing import Dict, Any, List, Mapping, Optional, Sequence
from ..MODELS.orchestration_config import TopologyConfig
from ..MODELS.service_definition import ComposeService
from ..UTILS.string_interpolation import EnvironmentInterpolator

# Fields merged key by key when a later descriptor redefines a service
_MAPPING_FIELDS = ("environment", "labels")


class ComposeParser:
    """
    Parser for docker-compose.yml files.
    """
    def __init__(self, context: Optional[Mapping[str, str]] = None):
        """
        Initializes the parser with an environment context for interpolation.

        :param context: Environment variables used for ${VAR} substitution.
        """
        self.context = dict(context or {})

    def parse(self, compose_path: str) -> TopologyConfig:
        """
        Parses a compose file from a path.

        :param compose_path: Path to the compose file.
        :return: Parsed configuration.
        """
        with open(compose_path, 'r') as f:
            content = f.read()
        config = self.parse_from_string(content)
        config.descriptor_paths = [compose_path]
        return config

    def parse_set(self, descriptor_paths: Sequence[str]) -> TopologyConfig:
        """
        Parses a descriptor set, layering each file over the previous ones.

        :param descriptor_paths: Descriptor files in override order.
        :return: The merged configuration.
        """
        merged = TopologyConfig(descriptor_paths=list(descriptor_paths))
        for path in descriptor_paths:
            layer = self.parse(path)
            for name, service in layer.services.items():
                if name in merged.services:
                    merged.services[name] = self._overlay(merged.services[name], service)
                else:
                    merged.services[name] = service
            for network in layer.networks:
                if network not in merged.networks:
                    merged.networks.append(network)
            for volume in layer.volumes:
                if volume not in merged.volumes:
                    merged.volumes.append(volume)
        return merged

    def parse_from_string(self, content: str) -> TopologyConfig:
        """
        Parses a compose file from a string.

        :param content: YAML content of the compose file.
        :return: Parsed configuration.
        """
        data = yaml.safe_load(content)
        if not data:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("Compose descriptor must be a mapping")
        # Substituted after parsing so values never become YAML syntax
        data = self._interpolate(data)

        services = {}
        for name, spec in (data.get('services') or {}).items():
            services[name] = self._parse_service(name, spec or {})

        return TopologyConfig(
            services=services,
            networks=list(data.get('networks', {}).keys()) if data.get('networks') else [],
            volumes=list(data.get('volumes', {}).keys()) if data.get('volumes') else []
        )

    def _parse_service(self, name: str, spec: Dict[str, Any]) -> ComposeService:
        """
        Parses a single service definition from a compose file.

        Only the keys present in ``spec`` are set on the result, so a later
        layer overrides exactly what it declares.

        :param name: The name of the service.
        :param spec: The service specification dictionary.
        :return: A ComposeService instance.
        """
        fields: Dict[str, Any] = {'name': name}

        if 'image' in spec:
            fields['image_name'] = spec['image'] or ''
        if 'build' in spec:
            build = spec['build']
            fields['build_context'] = build.get('context') if isinstance(build, dict) else build
        if 'command' in spec:
            fields['cmd'] = self._to_list(spec['command'])
        if 'entrypoint' in spec:
            fields['entrypoint'] = self._to_list(spec['entrypoint'])
        if 'environment' in spec:
            fields['environment'] = self._to_mapping(spec['environment'])
        if 'env_file' in spec:
            fields['environment_files'] = self._to_list(spec['env_file'])
        if 'labels' in spec:
            fields['labels'] = self._to_mapping(spec['labels'])
        if 'restart' in spec:
            fields['restart'] = str(spec['restart'])
        if 'networks' in spec:
            fields['networks'] = list(spec['networks'] or [])
        if 'depends_on' in spec:
            depends_on = spec['depends_on'] or []
            fields['depends_on'] = list(depends_on.keys()) if isinstance(depends_on, dict) else list(depends_on)

        # Ports are kept in their short string form
        if 'ports' in spec:
            ports = []
            for p in spec['ports'] or []:
                if isinstance(p, dict):
                    published = p.get('published')
                    ports.append(f"{published}:{p['target']}" if published else str(p['target']))
                else:
                    ports.append(str(p))
            fields['ports'] = ports

        return ComposeService(**fields)

    def _interpolate(self, node: Any) -> Any:
        """
        Substitutes ``${VAR}`` in every string scalar of a parsed document.
        Mapping keys are left as written.
        """
        if isinstance(node, str):
            return EnvironmentInterpolator.interpolate(node, self.context)
        if isinstance(node, dict):
            return {k: self._interpolate(v) for k, v in node.items()}
        if isinstance(node, list):
            return [self._interpolate(v) for v in node]
        return node

    def _overlay(self, base: ComposeService, layer: ComposeService) -> ComposeService:
        """
        Applies a later definition of a service on top of an earlier one.
        Mappings are merged key by key, everything else the later file sets wins.
        """
        update: Dict[str, Any] = {}
        for field in layer.model_fields_set - {'name'}:
            value = getattr(layer, field)
            if field in _MAPPING_FIELDS:
                update[field] = {**getattr(base, field), **value}
            else:
                update[field] = value
        return base.model_copy(update=update)

    def _to_mapping(self, val: Any) -> Dict[str, str]:
        """
        Normalizes the list (``KEY=VALUE``) and mapping forms to a dict of strings.
        """
        if isinstance(val, dict):
            return {str(k): '' if v is None else str(v) for k, v in val.items()}
        result = {}
        for e in val or []:
            if '=' in e:
                k, v = e.split('=', 1)
                result[k] = v
        return result

    def _to_list(self, val: Any) -> List[str]:
        """
        Helper to ensure a value is a list of strings.

        :param val: The value to convert.
        :return: A list of strings.
        """
        if val is None:
            return []
        if isinstance(val, str):
            return [val]
        return [str(v) for v in val]
