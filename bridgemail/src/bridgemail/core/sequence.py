"""Build protocol sequence sets from user-supplied message identifiers.

What:
  Validate identifier strings and collapse them into the compact IMAP
  sequence-set syntax (``1:3,7``).

Why:
  Batch commands act on many messages with one STORE/COPY. Validating every
  identifier up front guarantees that a typo never results in a partial
  operation on the server.

How:
  :func:`build_sequence_set` parses all identifiers before returning a
  :class:`SequenceSet`; the set sorts and de-duplicates its members and
  renders contiguous runs as ranges.

Interfaces:
  :class:`SequenceSet`, :func:`build_sequence_set`.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Sequence, Tuple

from ..errors import InvalidIdentifier, ValidationError

_ID_RE = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class SequenceSet:
    """Sorted, de-duplicated message numbers with IMAP rendering."""

    members: Tuple[int, ...]

    @classmethod
    def of(cls, numbers: Iterable[int]) -> "SequenceSet":
        return cls(tuple(sorted(set(int(n) for n in numbers))))

    def __iter__(self) -> Iterator[int]:
        return iter(self.members)

    def __len__(self) -> int:
        return len(self.members)

    def __bool__(self) -> bool:
        return bool(self.members)

    def ranges(self) -> List[Tuple[int, int]]:
        spans: List[Tuple[int, int]] = []
        for number in self.members:
            if spans and number == spans[-1][1] + 1:
                spans[-1] = (spans[-1][0], number)
            else:
                spans.append((number, number))
        return spans

    def __str__(self) -> str:
        return ",".join(
            str(start) if start == end else f"{start}:{end}" for start, end in self.ranges()
        )


def build_sequence_set(identifiers: Sequence[str]) -> SequenceSet:
    """Validate ``identifiers`` and return their sequence set.

    Raises:
      InvalidIdentifier: For the first identifier that is not a positive
        integer.
      ValidationError: When no identifiers are given.
    """

    if not identifiers:
        raise ValidationError("no message IDs given")
    numbers = []
    for identifier in identifiers:
        text = str(identifier).strip()
        if not _ID_RE.fullmatch(text) or int(text) == 0:
            raise InvalidIdentifier(str(identifier))
        numbers.append(int(text))
    return SequenceSet.of(numbers)


__all__ = ["SequenceSet", "build_sequence_set"]
