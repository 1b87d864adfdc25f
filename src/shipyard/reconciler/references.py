"""``${name.field}`` references between declarations.

A reference lets a declaration use a fact produced by one of its
dependencies, such as the id of a freshly created security group. A string
that is exactly one reference is replaced by the referenced value itself,
so lists and numbers keep their type; references embedded in a longer
string are substituted as text.
"""

import re
from typing import Any, Dict, Mapping, Set, Tuple

from shipyard.utils.errors import ConfigurationError, ErrorContext

REFERENCE_PATTERN = re.compile(r'\$\{([^{}]+)\.([A-Za-z_][A-Za-z0-9_]*)\}')


def find_references(value: Any) -> Set[Tuple[str, str]]:
    """Collect every (name, field) reference inside a config value."""
    found: Set[Tuple[str, str]] = set()

    if isinstance(value, str):
        found.update(REFERENCE_PATTERN.findall(value))
    elif isinstance(value, Mapping):
        for item in value.values():
            found |= find_references(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            found |= find_references(item)

    return found


def resolve_references(
    value: Any,
    facts: Mapping[str, Mapping[str, Any]],
    resource_id: str = None
) -> Any:
    """Return a copy of ``value`` with every reference substituted.

    Args:
        value: Config value (typically a declaration's desired config)
        facts: Observed config of each referenceable name
        resource_id: Declaration being resolved, for error context

    Returns:
        The resolved value

    Raises:
        ConfigurationError: If a reference points at an unknown name or field
    """
    if isinstance(value, str):
        return _resolve_string(value, facts, resource_id)
    if isinstance(value, Mapping):
        return {key: resolve_references(item, facts, resource_id) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_references(item, facts, resource_id) for item in value]
    if isinstance(value, tuple):
        return tuple(resolve_references(item, facts, resource_id) for item in value)
    return value


def _lookup(name: str, field_name: str, facts: Mapping[str, Mapping[str, Any]], resource_id: str) -> Any:
    if name not in facts:
        raise ConfigurationError(
            f"Reference '${{{name}.{field_name}}}' points at '{name}', which has no observed config",
            context=ErrorContext(resource_id=resource_id, operation='resolve_references')
        )
    if field_name not in facts[name]:
        available = ", ".join(sorted(facts[name])) or "none"
        raise ConfigurationError(
            f"Reference '${{{name}.{field_name}}}': '{name}' has no field '{field_name}' "
            f"(available: {available})",
            context=ErrorContext(resource_id=resource_id, operation='resolve_references')
        )
    return facts[name][field_name]


def _resolve_string(value: str, facts: Mapping[str, Mapping[str, Any]], resource_id: str) -> Any:
    whole = REFERENCE_PATTERN.fullmatch(value)
    if whole:
        return _lookup(whole.group(1), whole.group(2), facts, resource_id)

    return REFERENCE_PATTERN.sub(
        lambda match: str(_lookup(match.group(1), match.group(2), facts, resource_id)),
        value
    )


def referenced_names(config: Dict[str, Any]) -> Set[str]:
    """Names of all declarations or context entries a config refers to."""
    return {name for name, _ in find_references(config)}
