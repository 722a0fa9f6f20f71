"""Template resolution for action configs.

Strings in an action config may reference trigger data with ``{{path}}``
tokens, e.g. ``"Low score from {{submission.contact.email}}"``.

- A string that is exactly one token keeps the native value type
  (``"{{submission.score}}"`` -> ``3``).
- Embedded tokens are stringified; ``None`` renders as an empty string.
- Tokens whose path does not resolve are left verbatim.
- Dicts and lists are resolved recursively; other values pass through.
"""

import re
from typing import Any

from core.utils import MISSING, get_nested_value

TOKEN_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def resolve_template(value: str, data: dict) -> Any:
    """Resolve ``{{path}}`` tokens in a single string."""
    whole = TOKEN_PATTERN.fullmatch(value) if value else None
    if whole is not None:
        resolved = get_nested_value(data, whole.group(1))
        return value if resolved is MISSING else resolved

    def _replace(match: re.Match) -> str:
        resolved = get_nested_value(data, match.group(1))
        if resolved is MISSING:
            return match.group(0)
        if resolved is None:
            return ""
        return str(resolved)

    return TOKEN_PATTERN.sub(_replace, value)


def resolve_config(config: Any, data: dict) -> Any:
    """Recursively resolve template tokens in a config structure."""
    if isinstance(config, str):
        return resolve_template(config, data)
    if isinstance(config, dict):
        return {key: resolve_config(value, data) for key, value in config.items()}
    if isinstance(config, list):
        return [resolve_config(item, data) for item in config]
    return config
