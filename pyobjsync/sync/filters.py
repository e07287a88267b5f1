"""Include/exclude filtering of source keys.

Rules are evaluated in declaration order and the **last** rule whose
predicate matches decides. A key matched by no rule is included.

Examples:
    >>> chain = FilterChain([
    ...     FilterRule.exclude("*"),
    ...     FilterRule.include("*.txt"),
    ...     FilterRule.include("flowers/*"),
    ... ])
    >>> chain.accepts("flowers/red/rose.png")
    True
    >>> chain.accepts("notes.md")
    False
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatchcase
from typing import Callable, Union

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

KeyPredicate = Callable[[str], bool]


class FilterAction(str, Enum):
    """What a matching rule does with a key."""

    INCLUDE = "include"
    EXCLUDE = "exclude"


@dataclass(frozen=True)
class FilterRule:
    """An include or exclude rule over keys.

    ``pattern`` is either a glob (``*`` also matches ``/``, as in CLI
    filters) or a callable taking the key.
    """

    action: FilterAction
    pattern: Union[str, KeyPredicate]

    @classmethod
    def include(cls, pattern: Union[str, KeyPredicate]) -> "FilterRule":
        return cls(FilterAction.INCLUDE, pattern)

    @classmethod
    def exclude(cls, pattern: Union[str, KeyPredicate]) -> "FilterRule":
        return cls(FilterAction.EXCLUDE, pattern)

    @classmethod
    def parse(cls, text: str) -> "FilterRule":
        """Parse ``include:PAT``, ``exclude:PAT``, ``+PAT`` or ``-PAT``."""
        for prefix, action in (
            ("include:", FilterAction.INCLUDE),
            ("exclude:", FilterAction.EXCLUDE),
            ("+", FilterAction.INCLUDE),
            ("-", FilterAction.EXCLUDE),
        ):
            if text.startswith(prefix) and len(text) > len(prefix):
                return cls(action, text[len(prefix) :])
        raise ConfigurationError(
            f"Invalid filter {text!r}: expected include:PATTERN, exclude:PATTERN, "
            "+PATTERN or -PATTERN"
        )

    def __post_init__(self) -> None:
        if not isinstance(self.action, FilterAction):
            raise ConfigurationError(f"Invalid filter action: {self.action!r}")
        if not (isinstance(self.pattern, str) or callable(self.pattern)):
            raise ConfigurationError(
                f"Filter pattern must be a glob string or callable: {self.pattern!r}"
            )

    def matches(self, key: str) -> bool:
        if isinstance(self.pattern, str):
            return fnmatchcase(key, self.pattern)
        return bool(self.pattern(key))


class FilterChain:
    """Ordered rule chain deciding whether a source key takes part in sync."""

    def __init__(self, rules: Iterable[FilterRule] = ()):
        self.rules = list(rules)
        for rule in self.rules:
            if not isinstance(rule, FilterRule):
                raise ConfigurationError(f"Not a filter rule: {rule!r}")

    def accepts(self, key: str) -> bool:
        accepted = True
        for rule in self.rules:
            if rule.matches(key):
                accepted = rule.action is FilterAction.INCLUDE
        if not accepted:
            logger.debug(f"Filtered out: {key}")
        return accepted
