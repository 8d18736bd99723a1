"""Environment placeholder interpolation."""

from __future__ import annotations

from typing import Mapping


def interpolate_environment(
    environment: Mapping[str, str], replacements: Mapping[str, str]
) -> dict[str, str]:
    """Substitute placeholder tokens inside environment values.

    Keys are never rewritten and unknown tokens are left untouched.
    Longer tokens are substituted first so no token clobbers another
    that it prefixes.

    Args:
        environment: Caller-supplied environment mapping.
        replacements: Token to concrete path mapping.

    Returns:
        New mapping with the substitutions applied.
    """
    ordered_tokens = sorted(replacements, key=len, reverse=True)
    interpolated = {}
    for key, value in environment.items():
        for token in ordered_tokens:
            if token in value:
                value = value.replace(token, replacements[token])
        interpolated[key] = value
    return interpolated
