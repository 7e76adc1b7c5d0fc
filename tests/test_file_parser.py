from datetime import datetime
from decimal import Decimal

import pytest

from core.file_parser import (
    EmptyDocument,
    EncodingFailure,
    MalformedDocument,
    ParseError,
    Section,
    UnreadableFile,
    capitalize_words,
    decode_markup,
    join_readings,
    parse_setup,
    parse_setup_file,
    render_canonical,
    resolve_track_name,
)
from core.values import Empty, Numeric, Text
from tests.exports import export_markup

CARS = {"mx5_mx52016": "Global Mazda MX-5 Cup"}
TRACKS = {"lemans": "Circuit des 24 Heures du Mans", "lemans_full": "Le Mans (Full)"}


def test_parse_header_and_groups():
    doc = parse_setup(export_markup().encode("utf-8"), car_names=CARS, track_names={"lemans": "Le Mans"})

    assert doc.vehicle == "Global Mazda MX-5 Cup"
    assert doc.vehicle_id == "mx5_mx52016"
    assert doc.track == "Le Mans"
    assert doc.track_id == "lemans_full"
    assert doc.name == "baseline"
    assert doc.title == "MX-5 Cup setup export"
    assert [s.name for s in doc.root.sections] == ["Tires", "Chassis"]

    chassis = doc.root.section("Chassis")
    assert [p.label for p in chassis.parameters] == ["Front toe-in", "Cross weight", "Brake bias"]
    assert chassis.get("Front toe-in").value == Numeric(Decimal("-0.10"), "deg")
    assert chassis.get("Brake bias").raw == "54%"


def test_unknown_ids_are_kept_verbatim():
    doc = parse_setup(export_markup(car="my car", track="some track"))

    assert doc.vehicle == "my_car"
    assert doc.track == "some_track"


def test_longest_track_prefix_wins():
    assert resolve_track_name("lemans_full", TRACKS) == "Le Mans (Full)"
    assert resolve_track_name("lemans_2018", TRACKS) == "Circuit des 24 Heures du Mans"
    assert resolve_track_name("spa", TRACKS) == "spa"
    assert resolve_track_name("spa", None) == "spa"


def test_track_line_is_optional():
    doc = parse_setup(export_markup(track=None))

    assert doc.track is None
    assert doc.track_id is None


def test_metadata_without_track_line():
    doc = parse_setup(export_markup(track=None, extra_header=("exported: 2024-03-01",)))

    assert doc.track is None
    assert doc.metadata == (("exported", "2024-03-01"),)
    assert doc.exported_at == datetime(2024, 3, 1)


def test_car_line_follows_title():
    doc = parse_setup(export_markup(title="Old setup: do not use", car="mx5 mx52016", setup="quali"))

    assert doc.title == "Old setup: do not use"
    assert doc.vehicle_id == "mx5_mx52016"
    assert doc.track_id == "lemans_full"


def test_car_line_must_be_second():
    content = export_markup().replace("mx5 mx52016 setup: baseline", "mx5 mx52016 baseline")

    with pytest.raises(MalformedDocument) as excinfo:
        parse_setup(content)

    assert "car" in excinfo.value.marker


def test_header_metadata_and_timestamp():
    doc = parse_setup(export_markup(extra_header=("Exported: 2024-03-01 18:30", "Driver: J. Doe")))

    assert doc.metadata == (("Exported", "2024-03-01 18:30"), ("Driver", "J. Doe"))
    assert doc.exported_at == datetime(2024, 3, 1, 18, 30)


def test_multi_value_readings_are_joined():
    groups = [("LEFT FRONT", [
        ("Cold pressure", "26.0 psi"),
        ("Last temps O M I", ["119F", "121F", "123F"]),
        ("Tread remaining", ["98%", "97%", "96%"]),
        ("Compound", ["Dry", "Hard"]),
    ])]
    doc = parse_setup(export_markup(groups=groups))

    # Tread readings without suspension entries mark a tire group
    tire = doc.root.section("Left Front Tire")
    assert tire is not None
    temps = tire.get("Last temps O M I")
    assert temps.readings == ("119F", "121F", "123F")
    assert temps.raw == "119F, 121F, 123F"
    assert isinstance(temps.value, Text)
    assert tire.get("Compound").raw == "Dry Hard"


def test_repeated_label_accumulates_readings():
    groups = [("TIRES", [("Pressure", "26 psi"), ("Pressure", "27 psi")])]
    doc = parse_setup(export_markup(groups=groups))

    tires = doc.root.section("Tires")
    assert [p.label for p in tires.parameters] == ["Pressure"]
    assert tires.get("Pressure").readings == ("26 psi", "27 psi")


def test_suspension_group_is_not_renamed():
    groups = [("LEFT FRONT", [("Corner weight", "620 lbs"), ("Tread remaining", "98%")])]
    doc = parse_setup(export_markup(groups=groups))

    assert doc.root.section("Left Front") is not None


def test_deeper_headings_nest():
    groups = [
        ("CHASSIS", [("Cross weight", "50.0%")]),
        ("FRONT", [("Toe-in", "-1/16 in")], "h3"),
        ("LEFT", [("Camber", "-2.5 deg")], "h4"),
        ("REAR", [("Toe-in", "1/8 in")], "h3"),
        ("BRAKES", [("Bias", "54%")]),
    ]
    doc = parse_setup(export_markup(groups=groups))

    assert [s.name for s in doc.root.sections] == ["Chassis", "Brakes"]
    chassis = doc.root.section("Chassis")
    assert [s.name for s in chassis.sections] == ["Front", "Rear"]
    assert chassis.section("Front").section("Left").get("Camber").value == Numeric(Decimal("-2.5"), "deg")
    assert [path for path, _ in doc.root.walk()] == [
        ("Chassis",),
        ("Chassis", "Front"),
        ("Chassis", "Front", "Left"),
        ("Chassis", "Rear"),
        ("Brakes",),
    ]


def test_group_without_entries_is_kept_empty():
    groups = [("CHASSIS", [("Cross weight", "50.0%")]), ("MYSTERY", [])]
    doc = parse_setup(export_markup(groups=groups))

    mystery = doc.root.section("Mystery")
    assert mystery == Section(name="Mystery")


def test_notes_end_the_parameter_table():
    groups = [("CHASSIS", [("Cross weight", "50.0%")]), ("NOTES", [("Comment", "race setup")]),
              ("AFTER", [("Ignored", "1")])]
    doc = parse_setup(export_markup(groups=groups))

    assert [s.name for s in doc.root.sections] == ["Chassis"]


def test_placeholder_cells_are_empty():
    groups = [("AERO", [("Wing", "—"), ("Gurney", "")])]
    doc = parse_setup(export_markup(groups=groups))

    aero = doc.root.section("Aero")
    assert isinstance(aero.get("Wing").value, Empty)
    assert isinstance(aero.get("Gurney").value, Empty)


def test_comments_and_whitespace_are_ignored():
    content = export_markup().replace("<br>\n<br>", "<br>\n<!-- spacer -->\n<br>", 1)
    doc = parse_setup(content)

    assert [p.label for p in doc.root.section("Tires").parameters] == [
        "Left Front cold pressure",
        "Right Front cold pressure",
    ]


def test_missing_header_is_malformed():
    with pytest.raises(MalformedDocument) as excinfo:
        parse_setup(b"<html><body><h2>TIRES:</h2>Pressure: <u>26 psi</u><br></body></html>", source="x.htm")

    assert "header" in excinfo.value.marker
    assert str(excinfo.value).startswith("x.htm: ")


def test_missing_car_line_is_malformed():
    content = "<html><body><h2 align=\"center\">Just a title<br></h2></body></html>"

    with pytest.raises(MalformedDocument) as excinfo:
        parse_setup(content)

    assert "car" in excinfo.value.marker


def test_track_line_without_identifier_is_malformed():
    content = export_markup(track="").replace("track: <br>", "track:<br>")

    with pytest.raises(MalformedDocument) as excinfo:
        parse_setup(content)

    assert "track" in excinfo.value.marker


def test_duplicate_group_is_malformed():
    groups = [("TIRES", [("A", "1")]), ("TIRES", [("B", "2")])]

    with pytest.raises(MalformedDocument) as excinfo:
        parse_setup(export_markup(groups=groups))

    assert "Tires" in excinfo.value.marker


def test_document_without_parameters_is_empty():
    with pytest.raises(EmptyDocument):
        parse_setup(export_markup(groups=[("MYSTERY", [])]))


def test_errors_share_the_parse_error_base():
    for error in (EncodingFailure, MalformedDocument, EmptyDocument, UnreadableFile):
        assert issubclass(error, ParseError)


def test_legacy_encoding_fallback():
    content = export_markup(groups=[("TIRES", [("Température", "26 psi")])]).replace(
        "<meta charset=\"utf-8\">", "")
    doc = parse_setup(content.encode("windows-1252"))

    assert doc.root.section("Tires").get("Température") is not None


def test_encoding_hint_and_meta_charset():
    raw = "é".encode("latin-1")

    assert decode_markup(raw, "latin-1") == "é"
    assert decode_markup(b"<meta charset=\"latin-1\">" + raw).endswith("é")
    assert decode_markup("already text") == "already text"


def test_undecodable_bytes_raise_encoding_failure():
    # 0x81 is unassigned in windows-1252 and invalid UTF-8
    with pytest.raises(EncodingFailure):
        decode_markup(b"\x81\x81", fallback="windows-1252")


def test_parse_setup_file_uses_file_stem(write_export):
    path = write_export("Car1/Track1/Qualifying 2.htm")

    doc = parse_setup_file(path)

    assert doc.name == "Qualifying 2"
    assert doc.source == str(path)


def test_unreadable_file(tmp_path):
    with pytest.raises(UnreadableFile) as excinfo:
        parse_setup_file(tmp_path / "missing.htm")

    assert excinfo.value.source == str(tmp_path / "missing.htm")


def test_canonical_form_round_trips():
    groups = [
        ("TIRES", [("Cold pressure", "26.0 psi"), ("Last temps O M I", ["119F", "121F", "123F"])]),
        ("LEFT FRONT", [("Tread remaining", ["98%", "97%"])]),
        ("CHASSIS", [("Cross weight", "50.0%"), ("Wing", "—"), ("Notes & <stuff>", "a < b")]),
        ("FRONT", [("Toe-in", "-1/16 in")], "h3"),
    ]
    original = parse_setup(
        export_markup(groups=groups, extra_header=("Exported: 2024-03-01",)),
        car_names=CARS,
        track_names=TRACKS,
    )

    canonical = render_canonical(original)
    reparsed = parse_setup(canonical, car_names=CARS, track_names=TRACKS)

    assert reparsed == original
    assert render_canonical(reparsed) == canonical


def test_helpers():
    assert capitalize_words("LEFT FRONT") == "Left Front"
    assert capitalize_words("driver's side") == "Driver's Side"
    assert join_readings(("1", "2")) == "1, 2"
    assert join_readings(("Dry", "2")) == "Dry 2"
