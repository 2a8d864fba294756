"""
Utilities for string interpolation using environment variables.
"""
import logging
import re
from typing import Mapping

from ..exceptions import ValidationError

logger = logging.getLogger(__name__)


class EnvironmentInterpolator:
    """
    Utility for interpolating environment variables in stack documents.
    Supports ${VAR}, $VAR, ${VAR:-default}, ${VAR-default}, ${VAR:+value},
    ${VAR+value}, ${VAR:?message}, ${VAR?message} and the $$ escape.
    """
    # Group 1: $$ escape
    # Group 2/3: ${VAR} name and optional operator, Group 4: operand
    # Group 5: bare $VAR
    PATTERN = re.compile(
        r'(\$\$)'
        r'|\$\{([A-Za-z_][A-Za-z0-9_]*)(?:(:?[-+?])([^}]*))?\}'
        r'|\$([A-Za-z_][A-Za-z0-9_]*)'
    )

    @classmethod
    def interpolate(cls, template: str, context: Mapping[str, str]) -> str:
        """
        Interpolates environment variables in the template string using the provided context.

        :param template: The string containing ${VAR} placeholders.
        :param context: The environment variables context.
        :return: The interpolated string.
        :raises ValidationError: If a ${VAR:?message} variable is missing.
        """
        def replace(match):
            if match.group(1):
                return '$'
            name = match.group(2) or match.group(5)
            operator = match.group(3)
            operand = match.group(4) or ''
            value = context.get(name)
            # The ':' forms also treat an empty value as unset
            is_set = value is not None and (value != '' or not (operator or '').startswith(':'))

            if operator in (':-', '-'):
                return value if is_set else operand
            if operator in (':+', '+'):
                return operand if is_set else ''
            if operator in (':?', '?'):
                if not is_set:
                    raise ValidationError(
                        f"Required variable {name} is missing: {operand or 'no value set'}",
                        details={"variable": name},
                        suggestions=[f"Export {name} before deploying the stack"],
                    )
                return value
            if value is None:
                logger.warning("Variable %s is not set, substituting an empty string", name)
                return ''
            return value

        return cls.PATTERN.sub(replace, template)
