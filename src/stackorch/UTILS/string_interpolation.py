"""
Utilities for string interpolation using environment variables.
"""
import re
from typing import Mapping

class EnvironmentInterpolator:
    """
    Utility for interpolating environment variables in strings.
    Supports ${VAR}, ${VAR:-default}, ${VAR:+value} and $$ escapes.
    """
    # Group 1: VAR name, group 2: '-' or '+', group 3: default or value
    PATTERN = re.compile(r'\$\$|\$\{([^}:]+)(?::(-|\+)([^}]*))?\}')

    @staticmethod
    def interpolate(template: str, context: Mapping[str, str]) -> str:
        """
        Interpolates environment variables in the template string using the provided context.

        Unset variables without a modifier resolve to an empty string, the
        way docker compose treats them.

        :param template: The string containing ${VAR} placeholders.
        :param context: The environment variables context.
        :return: The interpolated string.
        """
        def replace(match):
            if match.group(0) == '$$':
                return '$'

            var_name = match.group(1)
            modifier = match.group(2)
            alt_value = match.group(3)

            value = context.get(var_name)

            if modifier == '-':
                # ${VAR:-default} -> use default if VAR is unset or empty
                return value if value else alt_value
            elif modifier == '+':
                # ${VAR:+value} -> use alt_value if VAR is set and not empty
                return alt_value if value else ''
            return value if value is not None else ''

        return EnvironmentInterpolator.PATTERN.sub(replace, template)
