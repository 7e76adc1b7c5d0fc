# SetupDiff v0.4.0
"""
Core package for SetupDiff.
Contains the value model, setup parsing, the setup index and comparison logic.
"""
from core.values import (
    parse_value,
    compare_values,
    format_value,
    Classification,
    Numeric,
    Text,
    Empty,
    Value
)
from core.natural import (
    natural_key,
    compare_natural,
    natural_sorted
)
from core.file_parser import (
    parse_setup,
    parse_setup_file,
    render_canonical,
    ParseError,
    EncodingFailure,
    MalformedDocument,
    EmptyDocument,
    UnreadableFile,
    Parameter,
    Section,
    SetupDocument
)
from core.setup_index import (
    SetupIndex,
    IndexEntry,
    segments_from_path
)
from core.comparison import (
    compare_documents,
    compare_setups,
    align_labels,
    ComparisonError,
    InsufficientDocuments,
    ComparisonResult,
    DiffSection,
    DiffRow,
    format_report
)

__all__ = [
    "parse_value",
    "compare_values",
    "format_value",
    "Classification",
    "Numeric",
    "Text",
    "Empty",
    "Value",
    "natural_key",
    "compare_natural",
    "natural_sorted",
    "parse_setup",
    "parse_setup_file",
    "render_canonical",
    "ParseError",
    "EncodingFailure",
    "MalformedDocument",
    "EmptyDocument",
    "UnreadableFile",
    "Parameter",
    "Section",
    "SetupDocument",
    "SetupIndex",
    "IndexEntry",
    "segments_from_path",
    "compare_documents",
    "compare_setups",
    "align_labels",
    "ComparisonError",
    "InsufficientDocuments",
    "ComparisonResult",
    "DiffSection",
    "DiffRow",
    "format_report"
]
