"""
Setup export parsing for SetupDiff.

Exports are HTML pages written by the sim. A centered <h2> header carries the
car and track identifiers; every other heading opens a property group whose
sibling nodes hold "Label:" text followed by <u>value</u> elements, one entry
per line, with a blank line (two <br>) closing the group. Deeper headings
(<h3>, <h4>, ...) open nested groups inside the preceding shallower one.
"""
import html
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Union

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from core.values import Value, parse_value

HEADING_TAGS = ["h2", "h3", "h4", "h5", "h6"]

# Groups from here on are free text, not setup parameters
TERMINAL_GROUPS = ("notes", "driver aids")

FALLBACK_ENCODING = "windows-1252"

_CHARSET_RE = re.compile(rb"""<meta[^>]+charset\s*=\s*["']?([A-Za-z0-9_\-]+)""", re.IGNORECASE)


# =============================================================================
# ERRORS
# =============================================================================

class ParseError(Exception):
    """Base class for all recoverable setup parsing failures."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"{self.source}: {self.message}"
        return self.message


class EncodingFailure(ParseError):
    """The raw bytes could not be decoded with any candidate encoding."""


class MalformedDocument(ParseError):
    """A structural marker is missing or inconsistent."""

    def __init__(self, marker: str, source: Optional[str] = None):
        super().__init__(f"Malformed setup export: {marker}", source)
        self.marker = marker


class EmptyDocument(ParseError):
    """The export has a header but no parameter data."""


class UnreadableFile(ParseError):
    """The export file could not be read from disk."""


# =============================================================================
# DOCUMENT MODEL
# =============================================================================

@dataclass(frozen=True)
class Parameter:
    """One labelled entry of a property group."""
    label: str
    value: Value
    readings: tuple[str, ...] = ()  # Raw cell texts, several for e.g. tire temps

    @property
    def raw(self) -> str:
        return join_readings(self.readings)


@dataclass(frozen=True)
class Section:
    """A named group of parameters and nested sections, in source order."""
    name: str
    children: tuple[Union[Parameter, "Section"], ...] = ()

    @property
    def parameters(self) -> tuple[Parameter, ...]:
        return tuple(c for c in self.children if isinstance(c, Parameter))

    @property
    def sections(self) -> tuple["Section", ...]:
        return tuple(c for c in self.children if isinstance(c, Section))

    def get(self, label: str) -> Optional[Parameter]:
        for child in self.children:
            if isinstance(child, Parameter) and child.label == label:
                return child
        return None

    def section(self, name: str) -> Optional["Section"]:
        for child in self.children:
            if isinstance(child, Section) and child.name == name:
                return child
        return None

    def walk(self, path: tuple[str, ...] = ()) -> Iterator[tuple[tuple[str, ...], Parameter]]:
        """Yield ``(section_path, parameter)`` for every parameter, depth first."""
        for child in self.children:
            if isinstance(child, Parameter):
                yield path, child
            else:
                yield from child.walk(path + (child.name,))

    @property
    def parameter_count(self) -> int:
        return sum(1 for _ in self.walk())


@dataclass(frozen=True)
class SetupDocument:
    """Result of parsing one setup export. Never mutated after parsing."""
    vehicle: str
    root: Section
    track: Optional[str] = None
    name: Optional[str] = None

    # Identifiers as written in the export, before name mapping
    vehicle_id: str = ""
    track_id: Optional[str] = None

    title: Optional[str] = None
    metadata: tuple[tuple[str, str], ...] = ()
    exported_at: Optional[datetime] = None
    source: Optional[str] = field(default=None, compare=False)

    @property
    def label(self) -> str:
        """Short human-readable label for column headers."""
        return self.name or self.source or self.vehicle


# =============================================================================
# HELPERS
# =============================================================================

def capitalize_words(text: str) -> str:
    """
    Capitalize each word: "LEFT FRONT" -> "Left Front".

    Unlike ``str.title()`` an apostrophe does not start a new word.
    """
    return re.sub(r"[\w']+", lambda m: m.group(0)[:1].upper() + m.group(0)[1:].lower(), text)


def join_readings(readings: tuple[str, ...]) -> str:
    """
    Join the readings of a multi-value parameter into one cell text.

    Numeric readings ("119F", "119F", "119F") are comma separated, anything
    else is joined with a single space.
    """
    if all(r[:1].isdigit() for r in readings):
        return ", ".join(readings)
    return " ".join(readings)


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse the timestamp formats seen in export headers.

    Supports ISO dates with or without a time, and US-style dates.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value

    if not isinstance(value, str):
        return None

    value = value.strip()

    formats = [
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d %H:%M",
        "%Y-%m-%d",
        "%m/%d/%Y %H:%M:%S",
        "%m/%d/%Y %I:%M:%S %p",
        "%m/%d/%Y",
    ]

    for fmt in formats:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue

    return None


def extract_metadata(lines: list[str]) -> tuple[tuple[tuple[str, str], ...], Optional[datetime]]:
    """
    Collect "key: value" header lines that follow the track line.

    Returns the pairs in source order and the export timestamp, if one of the
    date-like keys carries a parseable value.
    """
    pairs = []
    exported_at = None

    timestamp_keys = ("exported", "export date", "date", "timestamp", "saved", "created")

    for line in lines:
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()
        pairs.append((key, value))

        if exported_at is None and key.lower() in timestamp_keys:
            exported_at = parse_timestamp(value)

    return tuple(pairs), exported_at


def decode_markup(raw_markup: Union[bytes, str], encoding_hint: Optional[str] = None,
                  fallback: str = FALLBACK_ENCODING) -> str:
    """
    Decode raw export bytes.

    Candidates are tried in order: the caller's hint, a <meta charset> found in
    the document, UTF-8 (BOM tolerated), then the legacy fallback.
    """
    if isinstance(raw_markup, str):
        return raw_markup

    candidates = []
    if encoding_hint:
        candidates.append(encoding_hint)
    sniffed = _CHARSET_RE.search(raw_markup[:2048])
    if sniffed:
        candidates.append(sniffed.group(1).decode("ascii"))
    candidates.extend(["utf-8-sig", fallback])

    tried = []
    for encoding in candidates:
        if encoding in tried:
            continue
        tried.append(encoding)
        try:
            return raw_markup.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            continue

    raise EncodingFailure(f"Undecodable byte sequence (tried {', '.join(tried)})")


def resolve_track_name(track_id: str, track_names: Optional[dict]) -> str:
    """Map a track id to its display name through the longest known prefix."""
    if not track_names:
        return track_id

    best = None
    for known in track_names:
        if track_id.startswith(known) and (best is None or len(known) > len(best)):
            best = known

    if best is None:
        return track_id
    return track_names[best]


def _is_tire_group(labels: list[str]) -> bool:
    """Tire groups have tread readings but none of the suspension entries."""
    suspension = ("Camber", "Caster", "Ride height", "Corner weight")
    return (
        any(label.startswith("Tread") for label in labels)
        and not any(label in suspension or label.startswith("Spring") for label in labels)
    )


def _read_properties(heading: Tag) -> list[tuple[str, list[str]]]:
    """
    Walk the siblings after a group heading and collect its entries.

    A repeated label accumulates readings under its first position.
    """
    entries: dict[str, list[str]] = {}
    name = ""
    values: list[str] = []
    last_was_br = False

    def flush():
        if name and values:
            entries.setdefault(name, []).extend(values)

    for node in heading.next_siblings:
        if isinstance(node, Tag):
            if node.name in HEADING_TAGS:
                break
            if node.name == "br":
                if last_was_br:
                    break
            else:
                if not name:
                    break
                values.append(node.get_text().strip())
            last_was_br = node.name == "br"
        elif isinstance(node, NavigableString) and not isinstance(node, Comment):
            text = str(node).strip()
            if not text:
                continue
            if text.endswith(":"):
                flush()
                name = text[:-1].strip()
                values = []
            else:
                # Continuation of a property value
                values.append(text)
            last_was_br = False

    flush()
    return list(entries.items())


# =============================================================================
# PARSING
# =============================================================================

def parse_setup(
    raw_markup: Union[bytes, str],
    encoding_hint: Optional[str] = None,
    *,
    car_names: Optional[dict] = None,
    track_names: Optional[dict] = None,
    setup_name: Optional[str] = None,
    source: Optional[str] = None,
    unit_aliases: Optional[dict] = None,
    fallback_encoding: str = FALLBACK_ENCODING,
) -> SetupDocument:
    """
    Parse a setup export into a SetupDocument.

    Args:
        raw_markup: Export contents, as bytes or already-decoded text
        encoding_hint: Best-effort encoding from the file access layer
        car_names: Car id -> display name
        track_names: Track id prefix -> display name
        setup_name: Overrides the setup name from the header (e.g. file stem)
        source: Location of the export, kept for error reports

    Raises:
        EncodingFailure, MalformedDocument, EmptyDocument
    """
    try:
        text = decode_markup(raw_markup, encoding_hint, fallback_encoding)
    except EncodingFailure as e:
        e.source = source
        raise

    soup = BeautifulSoup(text, "html.parser")

    header = soup.find("h2", attrs={"align": "center"})
    if header is None:
        raise MalformedDocument("missing page header <h2 align=\"center\">", source)

    lines = [line.strip() for line in header.get_text("\n").splitlines() if line.strip()]

    # Title first, then the car line
    if len(lines) < 2 or " setup:" not in lines[1]:
        raise MalformedDocument("missing car identifier line '<car> setup: <name>'", source)

    title = lines[0]
    car_text, _, header_setup_name = lines[1].partition(" setup:")
    vehicle_id = car_text.strip().replace(" ", "_")
    if not vehicle_id:
        raise MalformedDocument("empty car identifier", source)
    vehicle = (car_names or {}).get(vehicle_id, vehicle_id)

    track_id = None
    track = None
    remaining = lines[2:]
    if remaining and remaining[0].lower().startswith("track:"):
        track_text = remaining.pop(0)[len("track:"):].strip()
        if not track_text:
            raise MalformedDocument("track line without a track identifier", source)
        track_id = track_text.replace(" ", "_")
        track = resolve_track_name(track_id, track_names)

    metadata, exported_at = extract_metadata(remaining)

    # Headings nest by level: <h3> groups live in the preceding <h2>, etc.
    root = _GroupBuilder("")
    stack: list[tuple[int, _GroupBuilder]] = [(-1, root)]

    for heading in soup.find_all(HEADING_TAGS):
        if heading is header:
            continue

        heading_text = heading.get_text(" ").strip()
        if heading_text.lower().startswith(TERMINAL_GROUPS):
            break

        group_name = capitalize_words(heading_text).replace(":", "").strip()
        if not group_name:
            raise MalformedDocument("property group heading without a name", source)

        entries = _read_properties(heading)
        if _is_tire_group([label for label, _ in entries]) and not group_name.endswith("Tire"):
            group_name += " Tire"

        depth = HEADING_TAGS.index(heading.name)
        while stack[-1][0] >= depth:
            stack.pop()
        parent = stack[-1][1]

        if group_name in parent.names:
            raise MalformedDocument(f"duplicate property group {group_name!r}", source)

        group = _GroupBuilder(group_name)
        for label, readings in entries:
            readings = tuple(readings)
            group.children.append(Parameter(
                label=label,
                value=parse_value(join_readings(readings), unit_aliases),
                readings=readings,
            ))
        parent.add(group)
        stack.append((depth, group))

    root_section = root.freeze()

    if root_section.parameter_count == 0:
        raise EmptyDocument("No parameter data found in setup export", source)

    return SetupDocument(
        vehicle=vehicle,
        track=track,
        name=setup_name or header_setup_name.strip() or None,
        vehicle_id=vehicle_id,
        track_id=track_id,
        title=title,
        metadata=metadata,
        exported_at=exported_at,
        root=root_section,
        source=source,
    )


class _GroupBuilder:
    """Mutable stand-in for a Section while the tree is being built."""

    def __init__(self, name: str):
        self.name = name
        self.children: list = []
        self.names: set[str] = set()

    def add(self, group: "_GroupBuilder"):
        self.names.add(group.name)
        self.children.append(group)

    def freeze(self) -> Section:
        return Section(
            name=self.name,
            children=tuple(
                c.freeze() if isinstance(c, _GroupBuilder) else c
                for c in self.children
            ),
        )


def parse_setup_file(file_path: Union[str, Path], encoding_hint: Optional[str] = None,
                     **kwargs) -> SetupDocument:
    """
    Parse a setup export from disk.

    The setup name defaults to the file name without its extension.

    Raises:
        UnreadableFile, or any error from ``parse_setup``
    """
    path = Path(file_path)

    try:
        raw = path.read_bytes()
    except OSError as e:
        raise UnreadableFile(f"Cannot read file: {e.strerror or e}", str(path)) from e

    kwargs.setdefault("setup_name", path.stem)
    kwargs.setdefault("source", str(path))
    return parse_setup(raw, encoding_hint, **kwargs)


# =============================================================================
# CANONICAL FORM
# =============================================================================

def render_canonical(document: SetupDocument) -> str:
    """
    Serialize a document back to export markup.

    Parsing the output with the same name tables yields an equal document.
    """
    esc = html.escape
    out = [
        "<html>",
        "<head><meta charset=\"utf-8\"><title>Setup Export</title></head>",
        "<body>",
    ]

    header = [esc(document.title or "Setup Export")]
    car_text = document.vehicle_id.replace("_", " ")
    header.append(f"{esc(car_text)} setup: {esc(document.name or '')}")
    if document.track_id:
        header.append(f"track: {esc(document.track_id.replace('_', ' '))}")
    header.extend(f"{esc(k)}: {esc(v)}" for k, v in document.metadata)
    out.append("<h2 align=\"center\">" + "<br>\n".join(header) + "<br>\n</h2>")

    def emit(section: Section, depth: int):
        tag = HEADING_TAGS[min(depth, len(HEADING_TAGS) - 1)]
        out.append(f"<{tag}>{esc(section.name)}:</{tag}>")
        for param in section.parameters:
            cells = " ".join(f"<u>{esc(r)}</u>" for r in param.readings)
            out.append(f"{esc(param.label)}: {cells}<br>")
        out.append("<br>")
        for child in section.sections:
            emit(child, depth + 1)

    for section in document.root.sections:
        emit(section, 0)

    out.extend(["</body>", "</html>"])
    return "\n".join(out) + "\n"
