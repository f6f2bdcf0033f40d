from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Optional, Sequence


class SelectionErrorKind(str, Enum):
    FORMAT = "format"
    OUT_OF_RANGE = "out_of_range"


@dataclass(frozen=True)
class SelectionResult:
    """
    Outcome of parsing an operator's selection.

    Malformed input is reported through `error` instead of an exception so
    callers have to decide between re-prompting and giving up.
    """
    indices: FrozenSet[int] = frozenset()
    error: Optional[SelectionErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    def pick(self, items: Sequence[str]) -> List[str]:
        """Returns the selected items in display order."""
        return [items[index] for index in sorted(self.indices)]


def _failure(kind: SelectionErrorKind, message: str) -> SelectionResult:
    return SelectionResult(error=kind, message=message)


def parse_selection(text: str, count: int) -> SelectionResult:
    """
    Parses a comma separated list of 1-based numbers and inclusive ranges
    such as "1,3-5" into zero-based indices.

    Args:
        text (str): The raw operator input.
        count (int): Number of items that were displayed.

    Returns:
        SelectionResult: The index set, or the kind of error and a message.
    """
    indices = set()

    for raw_token in text.split(","):
        token = raw_token.strip()
        if not token:
            return _failure(SelectionErrorKind.FORMAT, "Empty entry between commas.")

        # "-3" reads as a negative number, not a range
        if token.startswith("-") and token[1:].strip().isdigit():
            return _failure(SelectionErrorKind.OUT_OF_RANGE, f"{token} is outside 1-{count}.")

        if "-" in token:
            parts = token.split("-")
            if len(parts) != 2:
                return _failure(SelectionErrorKind.FORMAT, f"Invalid range '{token}'. Use start-end, e.g. 2-5.")
            try:
                start, end = int(parts[0].strip()), int(parts[1].strip())
            except ValueError:
                return _failure(SelectionErrorKind.FORMAT, f"Invalid range '{token}'. Both ends must be numbers.")
            if start > end:
                return _failure(SelectionErrorKind.OUT_OF_RANGE, f"Range '{token}' starts after it ends.")
        else:
            try:
                start = end = int(token)
            except ValueError:
                return _failure(SelectionErrorKind.FORMAT, f"'{token}' is not a number.")

        for value in (start, end):
            if value < 1 or value > count:
                return _failure(SelectionErrorKind.OUT_OF_RANGE, f"{value} is outside 1-{count}.")
        indices.update(range(start - 1, end))

    return SelectionResult(indices=frozenset(indices))
