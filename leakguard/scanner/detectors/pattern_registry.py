"""Pattern registry: the compiled, immutable set of detection rules.

Rules are validated when the registry is built. A duplicate name or an
invalid regex raises ConfigurationError at startup, never mid-scan.

Usage:
    >>> from leakguard.scanner.detectors import PatternRegistry
    >>> registry = PatternRegistry.default()
    >>> [rule.name for rule in registry]
    ['email', 'ssn', 'credit_card', 'password', 'api_key', 'aws_access_key', 'private_key']

    # Custom rules from a JSON file:
    # [{"name": "employee_id", "pattern": "EMP-\\\\d{6}", "ignore_case": false}]
    >>> registry = PatternRegistry.default().merged_with(PatternRegistry.from_file("rules.json"))
"""

import json
import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from ...core.exceptions import ConfigurationError
from ...core.types import PatternRule

logger = logging.getLogger(__name__)


def compile_rule(
    name: str,
    pattern: str,
    ignore_case: bool = False,
    description: str = "",
    validator: Optional[Callable[[str], bool]] = None,
    flags: int = 0,
) -> PatternRule:
    """
    Compile a single rule.

    Matching is case-sensitive unless ignore_case is set.

    Raises:
        ConfigurationError: Empty name or invalid regex syntax
    """
    if not name or not name.strip():
        raise ConfigurationError("Pattern rule name must not be empty")

    if ignore_case:
        flags |= re.IGNORECASE

    try:
        compiled = re.compile(pattern, flags)
    except re.error as e:
        raise ConfigurationError(
            f"Invalid regex for rule {name}: {e}",
            {"rule": name, "pattern": pattern},
        ) from e

    return PatternRule(name=name, regex=compiled, description=description, validator=validator)


def create_rule_adder(rule_list: List[PatternRule]) -> Callable[..., None]:
    """
    Create an _add() helper for a module-level rule list.

    Example:
        DEFAULT_RULES = []
        _add = create_rule_adder(DEFAULT_RULES)
        _add("ssn", r"\\b\\d{3}-\\d{2}-\\d{4}\\b", "US Social Security number")
    """
    def _add(
        name: str,
        pattern: str,
        description: str = "",
        ignore_case: bool = False,
        validator: Optional[Callable[[str], bool]] = None,
    ) -> None:
        rule_list.append(compile_rule(name, pattern, ignore_case, description, validator))
    return _add


class PatternRegistry:
    """
    Immutable, ordered collection of named detection rules.

    Shared read-only by all concurrent scans; no locking required.
    """

    __slots__ = ("_rules", "_by_name")

    def __init__(self, rules: Iterable[PatternRule]):
        rules = tuple(rules)
        by_name = {}
        for rule in rules:
            if rule.name in by_name:
                raise ConfigurationError(
                    f"Duplicate pattern rule name: {rule.name}",
                    {"rule": rule.name},
                )
            by_name[rule.name] = rule

        self._rules: Tuple[PatternRule, ...] = rules
        self._by_name = MappingProxyType(by_name)

    @property
    def rules(self) -> Tuple[PatternRule, ...]:
        return self._rules

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(rule.name for rule in self._rules)

    def get(self, name: str) -> Optional[PatternRule]:
        return self._by_name.get(name)

    def __iter__(self) -> Iterator[PatternRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __repr__(self) -> str:
        return f"PatternRegistry({list(self.names)})"

    def merged_with(self, other: "PatternRegistry") -> "PatternRegistry":
        """Return a new registry with other's rules appended."""
        return PatternRegistry(self._rules + other.rules)

    @classmethod
    def default(cls) -> "PatternRegistry":
        """Registry of the built-in rules."""
        from .patterns import DEFAULT_RULES
        return cls(DEFAULT_RULES)

    @classmethod
    def from_definitions(cls, definitions: Iterable[Mapping[str, Any]]) -> "PatternRegistry":
        """
        Build a registry from plain dicts.

        Each definition needs "name" and "pattern"; "ignore_case" and
        "description" are optional.
        """
        rules = []
        for index, definition in enumerate(definitions):
            try:
                name = definition["name"]
                pattern = definition["pattern"]
            except (KeyError, TypeError) as e:
                raise ConfigurationError(
                    f"Rule definition #{index} needs 'name' and 'pattern'",
                    {"index": index},
                ) from e
            rules.append(compile_rule(
                str(name),
                str(pattern),
                ignore_case=bool(definition.get("ignore_case", False)),
                description=str(definition.get("description", "")),
            ))
        return cls(rules)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PatternRegistry":
        """Load rule definitions from a JSON list."""
        path = Path(path)
        try:
            definitions = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot load rules from {path}: {e}") from e

        if not isinstance(definitions, list):
            raise ConfigurationError(f"Rules file {path} must contain a JSON list")

        registry = cls.from_definitions(definitions)
        logger.info(f"Loaded {len(registry)} custom rules from {path}")
        return registry
