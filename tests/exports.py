"""
Synthetic setup exports and documents for tests.
"""
import html
from typing import Optional

from core.file_parser import Parameter, Section, SetupDocument
from core.values import parse_value


def export_markup(
    car: str = "mx5 mx52016",
    setup: str = "baseline",
    track: Optional[str] = "lemans full",
    groups: Optional[list] = None,
    title: str = "MX-5 Cup setup export",
    extra_header: tuple = (),
    trailer: str = "",
) -> str:
    """
    Build export markup.

    ``groups`` is a list of ``(heading, entries)`` or ``(heading, entries, tag)``
    where ``entries`` is a list of ``(label, readings)`` and ``readings`` is a
    string or a list of strings.
    """
    if groups is None:
        groups = [
            ("TIRES", [("Left Front cold pressure", "26.0 psi"), ("Right Front cold pressure", "26.5 psi")]),
            ("CHASSIS", [("Front toe-in", "-0.10 deg"), ("Cross weight", "50.0%"), ("Brake bias", "54%")]),
        ]

    header = [html.escape(title), f"{car} setup: {setup}"]
    if track is not None:
        header.append(f"track: {track}")
    header.extend(extra_header)

    out = [
        "<html><head><meta charset=\"utf-8\"><title>Setup</title></head><body>",
        "<h2 align=\"center\">" + "<br>\n".join(header) + "<br>\n</h2>",
    ]
    for group in groups:
        heading, entries = group[0], group[1]
        tag = group[2] if len(group) > 2 else "h2"
        out.append(f"<{tag}>{heading}:</{tag}>")
        for label, readings in entries:
            if isinstance(readings, str):
                readings = [readings]
            cells = " ".join(f"<u>{html.escape(r)}</u>" for r in readings)
            out.append(f"{html.escape(label)}: {cells}<br>")
        out.append("<br>")
    out.append(trailer)
    out.append("</body></html>")
    return "\n".join(out)


def make_document(name: str, sections: dict, vehicle: str = "Car1", track: str = "Track1") -> SetupDocument:
    """
    Build a SetupDocument directly.

    ``sections`` maps section names to ``{label: raw}`` dicts, or to nested
    ``sections``-style dicts when a value is itself a dict of dicts.
    """
    def build(name: str, content: dict) -> Section:
        children = []
        for key, value in content.items():
            if isinstance(value, dict):
                children.append(build(key, value))
            else:
                children.append(Parameter(label=key, value=parse_value(value), readings=(value,)))
        return Section(name=name, children=tuple(children))

    return SetupDocument(
        vehicle=vehicle,
        track=track,
        name=name,
        vehicle_id=vehicle,
        root=build("", sections),
    )


