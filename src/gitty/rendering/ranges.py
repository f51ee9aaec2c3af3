"""Line/character positions and ranges within a rendered document."""

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class Position:
    """Zero-based line and character offset."""

    line: int
    character: int


@dataclass(frozen=True)
class Range:
    """Half-open span ``[start, end)`` of a document."""

    start: Position
    end: Position

    @classmethod
    def of(cls, start_line: int, start_char: int, end_line: int, end_char: int) -> "Range":
        return cls(Position(start_line, start_char), Position(end_line, end_char))

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def contains(self, position: Position) -> bool:
        return self.start <= position < self.end

    def shifted(self, delta: int) -> "Range":
        """The same span moved ``delta`` lines down."""
        return Range(
            Position(self.start.line + delta, self.start.character),
            Position(self.end.line + delta, self.end.character),
        )
