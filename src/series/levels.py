"""Partition levels for metric series and alerts.

A level is a tagged value: ``global`` or one of ``queue:<name>``,
``tag:<name>``, ``customer:<id>``. Everything downstream of the source
adapter treats it as an opaque hashable key; only its text form is
persisted (``alerts.level``).
"""

from dataclasses import dataclass
from typing import Literal

LevelKind = Literal["global", "queue", "tag", "customer"]

VALID_LEVEL_KINDS: frozenset[str] = frozenset({
    "global",
    "queue",
    "tag",
    "customer",
})


@dataclass(frozen=True, order=True)
class Level:
    """A partition of a metric.

    Attributes:
        kind: Partition dimension.
        value: Partition key (queue name, tag, customer id). None for global.
    """

    kind: str
    value: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in VALID_LEVEL_KINDS:
            raise ValueError(
                f"Invalid level kind {self.kind!r}. "
                f"Must be one of: {sorted(VALID_LEVEL_KINDS)}"
            )
        if self.kind == "global":
            if self.value is not None:
                raise ValueError("Global level takes no value")
        elif not self.value:
            raise ValueError(f"Level kind {self.kind!r} requires a value")

    def __str__(self) -> str:
        if self.kind == "global":
            return "global"
        return f"{self.kind}:{self.value}"

    @property
    def is_global(self) -> bool:
        return self.kind == "global"

    @classmethod
    def parse(cls, text: str) -> "Level":
        """Parse the stored form (``global``, ``queue:Billing``, ...)."""
        text = text.strip()
        if text == "global":
            return cls("global")
        kind, sep, value = text.partition(":")
        if not sep:
            raise ValueError(f"Malformed level {text!r}")
        return cls(kind, value)


GLOBAL = Level("global")
