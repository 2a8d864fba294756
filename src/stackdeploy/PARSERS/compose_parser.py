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
Parsers for Compose-style stack documents.
"""
import logging
import os
import re
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ValidationError
from ..MODELS.definition import Definition
from ..UTILS.string_interpolation import EnvironmentInterpolator

logger = logging.getLogger(__name__)

PARSE_SUGGESTIONS = ['Check YAML syntax', 'Verify Compose file format']

BOOL_TAG = 'tag:yaml.org,2002:bool'
INT_TAG = 'tag:yaml.org,2002:int'


class ComposeLoader(yaml.SafeLoader):
    """
    Safe loader with YAML 1.2 booleans and integers: ``22:22`` stays a
    string instead of a base-60 integer, and ``no``/``yes``/``on``/``off``
    stay strings.
    """


ComposeLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag not in (BOOL_TAG, INT_TAG)]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
ComposeLoader.add_implicit_resolver(
    BOOL_TAG,
    re.compile(r'^(?:true|True|TRUE|false|False|FALSE)$'),
    list('tTfF'),
)
ComposeLoader.add_implicit_resolver(
    INT_TAG,
    re.compile(r'^(?:[-+]?(?:0|[1-9][0-9]*)|0x[0-9a-fA-F]+)$'),
    list('-+0123456789'),
)


class ComposeParser:
    """
    Parser for docker-compose.yml style stack documents.
    """
    def __init__(self, context: Optional[Mapping[str, str]] = None):
        """
        Initializes the parser with an optional environment context for interpolation.

        :param context: A mapping of environment variables for interpolation.
        """
        self.context = dict(os.environ) if context is None else dict(context)

    def parse(self, compose_path: str) -> Definition:
        """
        Parses a stack document from a path.

        :param compose_path: Path to the compose file.
        :return: Parsed definition.
        """
        try:
            with open(compose_path, 'r') as f:
                content = f.read()
        except OSError as e:
            raise ValidationError(
                f"Cannot read Compose file {compose_path}: {e.strerror}",
                details={"path": compose_path},
            ) from e
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> Definition:
        """
        Parses a stack document from a string.

        :param content: YAML content of the document.
        :return: Parsed definition.
        :raises ValidationError: If the document is not valid YAML, has no
            services section, or a service entry does not match the schema.
        """
        content = EnvironmentInterpolator.interpolate(content, self.context)

        try:
            data = yaml.load(content, Loader=ComposeLoader)
        except (yaml.YAMLError, ValueError) as e:
            # ValueError: implicit timestamps such as 2024-13-45
            raise ValidationError(
                f"Failed to parse Compose file: {e}",
                details={"error": str(e)},
                suggestions=PARSE_SUGGESTIONS,
            ) from e

        if not isinstance(data, dict) or not data.get('services'):
            raise ValidationError(
                'Invalid Compose file: missing services section',
                details={"content": content[:100]},
                suggestions=['Ensure the Compose file has a services section'],
            )
        if not isinstance(data['services'], dict):
            raise ValidationError(
                'Invalid Compose file: services must be a mapping of name to service',
                suggestions=PARSE_SUGGESTIONS,
            )

        raw = {
            'version': data.get('version'),
            'services': {
                str(name): self._service_entry(str(name), spec)
                for name, spec in data['services'].items()
            },
            'networks': self._section(data, 'networks'),
            'volumes': self._section(data, 'volumes'),
        }

        try:
            definition = Definition.model_validate(raw)
        except PydanticValidationError as e:
            errors = self._format_errors(e)
            raise ValidationError(
                f"Invalid Compose file: {'; '.join(errors)}",
                details={"errors": errors},
                suggestions=PARSE_SUGGESTIONS,
            ) from e

        logger.debug(
            "Parsed definition with %d services, %d networks, %d volumes",
            len(definition.services), len(definition.networks), len(definition.volumes),
        )
        return definition

    def _service_entry(self, name: str, spec: Any) -> Dict[str, Any]:
        """
        Prepares a single service entry for validation.

        :param name: The name of the service.
        :param spec: The service specification from the document.
        """
        if not isinstance(spec, dict):
            raise ValidationError(
                f"Invalid Compose file: service '{name}' must be a mapping",
                details={"service": name},
                suggestions=PARSE_SUGGESTIONS,
            )
        entry = dict(spec)
        entry['name'] = name
        return entry

    def _section(self, data: Dict[str, Any], key: str) -> Dict[str, Any]:
        """
        Returns a top-level networks/volumes section with null entries as
        empty mappings (``data:`` declares a volume with defaults).
        """
        section = data.get(key) or {}
        if not isinstance(section, dict):
            raise ValidationError(
                f"Invalid Compose file: {key} must be a mapping",
                suggestions=PARSE_SUGGESTIONS,
            )
        return {str(k): (v if v is not None else {}) for k, v in section.items()}

    @staticmethod
    def _format_errors(error: PydanticValidationError) -> List[str]:
        errors = []
        for err in error.errors():
            location = '.'.join(str(part) for part in err['loc'])
            errors.append(f"{location}: {err['msg']}" if location else err['msg'])
        return errors
