"""Prefix relocation of source keys to target keys."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Union

from ..exceptions import ConfigurationError


@dataclass(frozen=True)
class Relocation:
    """Rewrite keys starting with ``source_prefix`` to ``target_prefix``.

    Examples:
        >>> Relocation("a/b", "zzz").apply("a/b/c.txt")
        'zzz/c.txt'
        >>> Relocation("a/b/", "").apply("a/b/c.txt")
        'c.txt'
    """

    source_prefix: str
    target_prefix: str

    def __post_init__(self) -> None:
        if not isinstance(self.source_prefix, str) or not isinstance(
            self.target_prefix, str
        ):
            raise ConfigurationError(
                f"Relocation prefixes must be strings: {self!r}"
            )
        if not self.source_prefix:
            raise ConfigurationError("Relocation source prefix cannot be empty")

    def matches(self, key: str) -> bool:
        return key.startswith(self.source_prefix)

    def apply(self, key: str) -> str:
        rest = key[len(self.source_prefix) :]
        if not self.target_prefix:
            return rest.lstrip("/")
        if self.target_prefix.endswith("/") and rest.startswith("/"):
            rest = rest[1:]
        return f"{self.target_prefix}{rest}"


RelocationLike = Union[Relocation, Sequence[str]]


class KeyMapper:
    """Translates source keys to target keys.

    The first relocation whose source prefix matches wins; keys matching
    none are returned unchanged.
    """

    def __init__(self, relocations: Iterable[RelocationLike] = ()):
        self.relocations: list[Relocation] = []
        for rule in relocations:
            if isinstance(rule, Relocation):
                self.relocations.append(rule)
            elif isinstance(rule, (tuple, list)) and len(rule) == 2:
                self.relocations.append(Relocation(rule[0], rule[1]))
            else:
                raise ConfigurationError(
                    f"Relocation must be a (source_prefix, target_prefix) pair: "
                    f"{rule!r}"
                )

    @property
    def preserves_order(self) -> bool:
        """True if mapped keys keep the ascending order of the source keys."""
        return not self.relocations

    def map(self, source_key: str) -> str:
        for relocation in self.relocations:
            if relocation.matches(source_key):
                return relocation.apply(source_key)
        return source_key
