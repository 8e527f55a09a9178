"""
Pattern safety checks

Walks the group structure of a rule pattern, at every nesting depth, looking for
repeated groups that can backtrack catastrophically such as ``(a+)+`` or
``((\\w+\\s?))*``.
"""

import re
from typing import List, Optional, Tuple

_BRACE = re.compile(r"\{(\d*)(,?)(\d*)\}")
_ZERO_WIDTH_ESCAPES = "bBAZzG"
_LOOKAROUNDS = ("(?=", "(?!", "(?<=", "(?<!")

# (solid, elastic): solid items always consume input and cannot stretch,
# elastic items contain an unbounded quantifier somewhere inside
Item = Tuple[bool, bool]


class _Group:
    """State of a group that is still open while scanning the pattern"""

    def __init__(self, start: int, zero_width: bool = False):
        self.start = start
        self.zero_width = zero_width
        self.elastic = False
        self.solid = True
        self._branch_solid = False

    def add(self, item: Item) -> None:
        solid, elastic = item
        self._branch_solid = self._branch_solid or solid
        self.elastic = self.elastic or elastic

    def next_branch(self) -> None:
        self.solid = self.solid and self._branch_solid
        self._branch_solid = False

    def close(self) -> Item:
        self.next_branch()
        return (self.solid and not self.zero_width, self.elastic)


def _skip_class(pattern: str, i: int) -> int:
    j = i + 1
    if j < len(pattern) and pattern[j] == "^":
        j += 1
    if j < len(pattern) and pattern[j] == "]":
        j += 1
    while j < len(pattern) and pattern[j] != "]":
        j += 2 if pattern[j] == "\\" else 1
    return j + 1


def _read_quantifier(pattern: str, i: int) -> Tuple[int, Optional[int], int]:
    """Returns (min, max, next index); max is None when unbounded"""
    if i >= len(pattern):
        return 1, 1, i

    char = pattern[i]
    if char == "*":
        low, high, i = 0, None, i + 1
    elif char == "+":
        low, high, i = 1, None, i + 1
    elif char == "?":
        low, high, i = 0, 1, i + 1
    elif char == "{":
        m = _BRACE.match(pattern, i)
        if m is None or not (m.group(1) or m.group(3)):
            return 1, 1, i
        low = int(m.group(1) or 0)
        if m.group(3):
            high: Optional[int] = int(m.group(3))
        else:
            high = None if m.group(2) else low
        i = m.end()
    else:
        return 1, 1, i

    # Lazy and possessive forms repeat the same way
    if i < len(pattern) and pattern[i] in "?+":
        i += 1
    return low, high, i


def find_nested_quantifier(pattern: str) -> Optional[str]:
    """
    Find a repeated group that can match the same text in many ways

    A group is flagged when it is repeated without an upper bound, holds an
    unbounded quantifier at any depth, and has an alternative without a solid
    item to separate its iterations. ``(a+)+`` and ``((a+))+`` are flagged;
    ``v[0-9]+(?:\\.[0-9]+)*`` is not, since each iteration must consume a dot.

    Args:
        pattern: A pattern that already compiles

    Returns:
        The offending group with its quantifier, or None if the pattern is safe
    """
    stack: List[_Group] = [_Group(0)]
    i = 0

    while i < len(pattern):
        char = pattern[i]
        start = i
        closed_group = False

        if char == "\\":
            if pattern[i + 1 : i + 2] in _ZERO_WIDTH_ESCAPES:
                i += 2
                continue
            item: Item = (not pattern[i + 1 : i + 2].isdigit(), False)
            i += 2
        elif char == "[":
            i = _skip_class(pattern, i)
            item = (True, False)
        elif char == "(":
            if pattern.startswith("(?#", i):
                i = pattern.index(")", i) + 1
                continue
            if pattern.startswith("(?P=", i):
                # Named backreference
                i = pattern.index(")", i) + 1
                item = (False, False)
            elif pattern.startswith(_LOOKAROUNDS, i):
                prefix = 4 if pattern.startswith("(?<", i) else 3
                stack.append(_Group(start, zero_width=True))
                i += prefix
                continue
            elif pattern.startswith(("(?P<", "(?<"), i):
                stack.append(_Group(start))
                i = pattern.index(">", i) + 1
                continue
            elif pattern.startswith("(?>", i):
                # Atomic group
                stack.append(_Group(start))
                i += 3
                continue
            elif pattern.startswith("(?", i):
                j = i + 2
                while j < len(pattern) and pattern[j] not in ":)":
                    j += 1
                if pattern[j : j + 1] == ")":
                    # Inline flags such as (?i)
                    i = j + 1
                    continue
                stack.append(_Group(start))
                i = j + 1
                continue
            else:
                stack.append(_Group(start))
                i += 1
                continue
        elif char == ")":
            group = stack.pop()
            item = group.close()
            start = group.start
            closed_group = True
            i += 1
        elif char == "|":
            stack[-1].next_branch()
            i += 1
            continue
        elif char in "^$":
            i += 1
            continue
        else:
            item = (True, False)
            i += 1

        low, high, i = _read_quantifier(pattern, i)
        solid, elastic = item
        if closed_group and high is None and elastic and not solid:
            return pattern[start:i]

        stack[-1].add((solid and low >= 1 and high is not None, elastic or high is None))

    return None
