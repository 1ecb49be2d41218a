"""Placeholder substitution for notification and email templates."""

from __future__ import annotations

import re
from typing import Mapping

_PLACEHOLDER = re.compile(r"{{\s*([A-Za-z0-9_]+)\s*}}")


def render_template(template: str, variables: Mapping[str, object]) -> str:
    """Replace ``{{name}}`` placeholders; unknown names are left untouched."""

    def _substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        return str(variables[key])

    return _PLACEHOLDER.sub(_substitute, template)
