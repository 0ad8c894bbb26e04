"""ssdb-eda exception hierarchy.

Schema problems are fatal; value and category problems only raise in strict
mode and are otherwise collected in the QC report.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence


class SsdbError(Exception):
    """Base exception for all ssdb-eda failures."""


class MissingFieldError(SsdbError):
    """Raised when a sheet lacks one or more required columns."""

    def __init__(self, sheet: str, columns: Sequence[str], message: str | None = None) -> None:
        self.sheet = sheet
        self.columns = list(columns)
        super().__init__(
            message
            or f"Sheet {sheet!r} is missing required columns: {', '.join(self.columns)}"
        )


class MissingSheetError(MissingFieldError):
    """Raised when the workbook does not carry the expected sheets."""

    def __init__(self, expected: Sequence[str], found: int) -> None:
        missing = list(expected)[found:]
        super().__init__(
            "workbook",
            missing,
            f"Workbook has {found} sheet(s); expected {len(expected)} "
            f"in order: {', '.join(expected)}",
        )


class DuplicateColumnError(SsdbError):
    """Raised when header normalization maps two source columns onto one name."""

    def __init__(self, sheet: str, columns: Sequence[str]) -> None:
        self.sheet = sheet
        self.columns = list(columns)
        super().__init__(
            f"Sheet {sheet!r} has duplicate columns after normalization: "
            f"{', '.join(self.columns)}. Rename or remove one."
        )


class UnparseableValueError(SsdbError):
    """Raised in strict mode when a field fails type coercion."""

    def __init__(self, sheet: str, column: str, count: int, examples: Iterable[str]) -> None:
        self.sheet = sheet
        self.column = column
        self.count = count
        self.examples = list(examples)
        shown = ", ".join(repr(e) for e in self.examples)
        super().__init__(
            f"{count} unparseable value(s) in {sheet}.{column}"
            + (f" (e.g. {shown})" if shown else "")
        )


class UnrecognizedCategoryError(SsdbError):
    """Raised in strict mode when a label is missing from its vocabulary."""

    def __init__(self, dimension: str, labels: dict[str, int]) -> None:
        self.dimension = dimension
        self.labels = dict(labels)
        listed = ", ".join(f"{label} ({n})" for label, n in sorted(self.labels.items()))
        super().__init__(f"Unrecognized {dimension} labels: {listed}")


class ColumnClashError(SsdbError):
    """Raised when the incident sheet already carries a column an aggregate adds."""

    def __init__(self, sheet: str, columns: Sequence[str]) -> None:
        self.sheet = sheet
        self.columns = list(columns)
        super().__init__(
            f"Sheet 'incidents' already has column(s) produced from {sheet!r}: "
            f"{', '.join(self.columns)}. Rename them with --map."
        )
