"""
SetupDiff Comparison Engine

Aligns any number of parsed setup documents field by field and classifies the
change of every parameter between neighbouring documents.

Alignment is an ordered union merge, not a general tree diff: at every level
the section names (and, inside a section, the parameter labels) of all inputs
are merged into one order, and each merged label becomes one row with one
value slot per input.
"""
import heapq
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, Optional, Sequence, Union

from core.file_parser import ParseError, Section, SetupDocument, parse_setup_file
from core.natural import natural_key
from core.values import (
    DEFAULT_EPSILON,
    Classification,
    Value,
    compare_values,
    format_value,
    value_to_dict,
)

logger = logging.getLogger(__name__)


class ComparisonError(Exception):
    """A comparison request could not be served."""


class InsufficientDocuments(ComparisonError):
    """Fewer than two documents are left to compare."""

    def __init__(self, count: int, failures: Sequence[tuple[str, ParseError]] = ()):
        super().__init__(f"At least two setups are required to compare, got {count}")
        self.count = count
        self.failures = list(failures)


@dataclass(frozen=True)
class DiffRow:
    """One parameter aligned across all compared documents."""
    label: str
    path: tuple[str, ...]
    values: tuple[Optional[Value], ...]

    # classifications[i] is the change from values[i] to values[i + 1], or from
    # values[0] when comparing against the first document. None marks a pair
    # with an absent side.
    classifications: tuple[Optional[Classification], ...] = ()

    def classification(self, index: int) -> Classification:
        """Change between column ``index`` and its reference; absent is incomparable."""
        verdict = self.classifications[index]
        return Classification.INCOMPARABLE if verdict is None else verdict

    @property
    def is_changed(self) -> bool:
        return any(c is not Classification.UNCHANGED for c in self.classifications)

    @property
    def missing(self) -> tuple[int, ...]:
        """Indexes of documents that lack this parameter."""
        return tuple(i for i, v in enumerate(self.values) if v is None)

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "path": list(self.path),
            "values": [value_to_dict(v) for v in self.values],
            "display": [format_value(v) for v in self.values],
            "classifications": [c.value if c else None for c in self.classifications],
            "changed": self.is_changed,
        }


@dataclass(frozen=True)
class DiffSection:
    """Merged view of one section across all compared documents."""
    name: str
    path: tuple[str, ...]
    rows: tuple[DiffRow, ...] = ()
    sections: tuple["DiffSection", ...] = ()

    # Indexes of documents that contain this section
    present_in: tuple[int, ...] = ()

    def walk(self) -> Iterator[DiffRow]:
        yield from self.rows
        for section in self.sections:
            yield from section.walk()

    def section(self, name: str) -> Optional["DiffSection"]:
        for section in self.sections:
            if section.name == name:
                return section
        return None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": list(self.path),
            "present_in": list(self.present_in),
            "rows": [r.to_dict() for r in self.rows],
            "sections": [s.to_dict() for s in self.sections],
        }


@dataclass(frozen=True)
class ComparisonResult:
    """Result of comparing N setups. Built fresh per request, never mutated."""
    columns: tuple[str, ...]
    root: DiffSection
    documents: tuple[SetupDocument, ...] = ()
    against_first: bool = False
    failures: tuple[tuple[str, ParseError], ...] = field(default=(), compare=False)

    def rows(self) -> Iterator[DiffRow]:
        """Every row, in display order."""
        return self.root.walk()

    def find(self, path: Sequence[str], label: str) -> Optional[DiffRow]:
        section = self.root
        for name in path:
            section = section.section(name)
            if section is None:
                return None
        for row in section.rows:
            if row.label == label:
                return row
        return None

    def changed_rows(self) -> list[DiffRow]:
        return [row for row in self.rows() if row.is_changed]

    @property
    def change_count(self) -> int:
        return len(self.changed_rows())

    @property
    def is_identical(self) -> bool:
        return self.change_count == 0

    def summary(self) -> dict:
        """Count pairwise verdicts per classification; absent pairs count as incomparable."""
        counts = {c.value: 0 for c in Classification}
        for row in self.rows():
            for i in range(len(row.classifications)):
                counts[row.classification(i).value] += 1
        return counts

    def to_dict(self) -> dict:
        return {
            "columns": list(self.columns),
            "against_first": self.against_first,
            "is_identical": self.is_identical,
            "change_count": self.change_count,
            "summary": self.summary(),
            "documents": [
                {"vehicle": d.vehicle, "track": d.track, "name": d.name, "source": d.source}
                for d in self.documents
            ],
            "failures": [
                {"source": source, "error": type(error).__name__, "detail": error.message}
                for source, error in self.failures
            ],
            "root": self.root.to_dict(),
        }


# =============================================================================
# ALIGNMENT
# =============================================================================

def _dedupe(labels: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(labels))


def align_labels(label_lists: Sequence[Sequence[str]]) -> list[str]:
    """
    Merge ordered label lists into one order containing every label once.

    When the lists agree on the relative order of the labels they share, the
    result respects every list, with ties broken by first appearance. When
    they disagree, the order of a document holding every label wins, provided
    all such documents agree; otherwise labels fall back to natural order.
    """
    lists = [_dedupe(labels) for labels in label_lists]

    first_seen: dict[str, int] = {}
    for labels in lists:
        for label in labels:
            first_seen.setdefault(label, len(first_seen))

    if not first_seen:
        return []

    # Consecutive pairs of each list imply its whole order
    successors: dict[str, set] = {label: set() for label in first_seen}
    indegree = dict.fromkeys(first_seen, 0)
    for labels in lists:
        for before, after in zip(labels, labels[1:]):
            if after not in successors[before]:
                successors[before].add(after)
                indegree[after] += 1

    ready = [(first_seen[label], label) for label, degree in indegree.items() if degree == 0]
    heapq.heapify(ready)
    merged = []
    while ready:
        _, label = heapq.heappop(ready)
        merged.append(label)
        for after in successors[label]:
            indegree[after] -= 1
            if indegree[after] == 0:
                heapq.heappush(ready, (first_seen[after], after))

    if len(merged) == len(first_seen):
        return merged

    # The inputs disagree on order
    complete = {tuple(labels) for labels in lists if len(labels) == len(first_seen)}
    if len(complete) == 1:
        return list(complete.pop())

    return sorted(first_seen, key=natural_key)


def _classify(values: tuple[Optional[Value], ...], epsilon: Decimal,
              against_first: bool) -> tuple[Optional[Classification], ...]:
    verdicts = []
    for i in range(1, len(values)):
        before = values[0] if against_first else values[i - 1]
        after = values[i]
        if before is None or after is None:
            verdicts.append(None)
        else:
            verdicts.append(compare_values(before, after, epsilon))
    return tuple(verdicts)


def _merge_sections(sections: Sequence[Optional[Section]], name: str, path: tuple[str, ...],
                    epsilon: Decimal, against_first: bool) -> DiffSection:
    """Recursively merge the same section of every document."""
    param_maps = []
    for section in sections:
        params = {}
        if section is not None:
            for param in section.parameters:
                params.setdefault(param.label, param)
        param_maps.append(params)

    labels = align_labels([list(params) for params in param_maps])
    rows = []
    for label in labels:
        values = tuple(
            params[label].value if label in params else None
            for params in param_maps
        )
        rows.append(DiffRow(
            label=label,
            path=path,
            values=values,
            classifications=_classify(values, epsilon, against_first),
        ))

    child_maps = []
    for section in sections:
        children = {}
        if section is not None:
            for child in section.sections:
                children.setdefault(child.name, child)
        child_maps.append(children)

    child_names = align_labels([list(children) for children in child_maps])
    merged_children = tuple(
        _merge_sections(
            [children.get(child_name) for children in child_maps],
            child_name,
            path + (child_name,),
            epsilon,
            against_first,
        )
        for child_name in child_names
    )

    return DiffSection(
        name=name,
        path=path,
        rows=tuple(rows),
        sections=merged_children,
        present_in=tuple(i for i, s in enumerate(sections) if s is not None),
    )


# =============================================================================
# ENTRY POINTS
# =============================================================================

def compare_documents(
    documents: Sequence[SetupDocument],
    epsilon: Union[Decimal, float] = DEFAULT_EPSILON,
    against_first: bool = False,
    failures: Sequence[tuple[str, ParseError]] = (),
) -> ComparisonResult:
    """
    Main entry point for comparing parsed setups.

    Args:
        documents: Setups in the order the user selected them (at least two)
        epsilon: Tolerance under which numeric values count as unchanged
        against_first: Classify every column against the first instead of
            against its left neighbour

    Returns:
        ComparisonResult covering every section and parameter of every input
    """
    documents = list(documents)
    if len(documents) < 2:
        raise InsufficientDocuments(len(documents), failures)

    epsilon = Decimal(str(epsilon)) if isinstance(epsilon, float) else Decimal(epsilon)

    root = _merge_sections(
        [doc.root for doc in documents],
        name="",
        path=(),
        epsilon=epsilon,
        against_first=against_first,
    )

    return ComparisonResult(
        columns=tuple(doc.label for doc in documents),
        root=root,
        documents=tuple(documents),
        against_first=against_first,
        failures=tuple(failures),
    )


def compare_setups(
    sources: Sequence[Union[str, Path]],
    parse: Callable[..., SetupDocument] = parse_setup_file,
    epsilon: Union[Decimal, float] = DEFAULT_EPSILON,
    against_first: bool = False,
    **parse_kwargs,
) -> ComparisonResult:
    """
    Parse and compare a batch of setup exports.

    Files that fail to parse are left out and reported in
    ``ComparisonResult.failures``; the comparison goes ahead as long as two
    setups remain.

    Raises:
        InsufficientDocuments: fewer than two setups parsed
    """
    documents = []
    failures = []

    for source in sources:
        try:
            documents.append(parse(source, **parse_kwargs))
        except ParseError as e:
            logger.warning(f"Skipping setup {source}: {e.message}")
            failures.append((str(source), e))

    return compare_documents(documents, epsilon=epsilon, against_first=against_first,
                             failures=failures)


# =============================================================================
# TEXT REPORT
# =============================================================================

_MARKERS = {
    Classification.INCREASED: "+",
    Classification.DECREASED: "-",
    Classification.UNCHANGED: " ",
    Classification.INCOMPARABLE: "?",
}


def format_report(result: ComparisonResult, changed_only: bool = False, width: int = 18) -> str:
    """
    Render a comparison as a plain-text table.

    Each value cell is prefixed with the marker of its classification against
    its reference column: ``+`` increased, ``-`` decreased, ``?`` incomparable.
    """
    columns = len(result.columns)
    lines = [
        "=" * 70,
        "SETUP COMPARISON",
        "=" * 70,
        "",
    ]
    for i, doc in enumerate(result.documents):
        lines.append(f"  [{i + 1}] {doc.label}  ({doc.vehicle}{', ' + doc.track if doc.track else ''})")
    for source, error in result.failures:
        lines.append(f"  [!] {source}: {type(error).__name__}: {error.message}")
    lines.append("")

    if result.is_identical:
        lines.extend([
            "-" * 40,
            "RESULT: NO DIFFERENCES FOUND",
            "-" * 40,
        ])
    else:
        lines.extend([
            "-" * 40,
            f"RESULT: {result.change_count} PARAMETER(S) DIFFER",
            "-" * 40,
        ])

    def cell(text: str) -> str:
        text = text if len(text) <= width else text[:width - 1] + "~"
        return text.ljust(width)

    def emit(section: DiffSection):
        rows = [r for r in section.rows if r.is_changed or not changed_only]
        if section.path and (rows or not changed_only):
            lines.append("")
            lines.append(" / ".join(section.path))
        for row in rows:
            cells = [" " + cell(format_value(row.values[0]))]
            for i in range(1, columns):
                marker = _MARKERS[row.classification(i - 1)]
                cells.append(marker + cell(format_value(row.values[i])))
            lines.append(f"  {cell(row.label)} " + " ".join(cells).rstrip())
        for child in section.sections:
            emit(child)

    emit(result.root)

    lines.extend([
        "",
        "=" * 70,
        "END OF REPORT",
        "=" * 70,
    ])
    return "\n".join(lines)
