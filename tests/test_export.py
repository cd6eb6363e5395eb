from __future__ import annotations

import pytest

from adventeditor.export import (
    ExportedFile,
    export_filename,
    markdown_document,
    parse_markdown_document,
    write_exports,
)


@pytest.mark.parametrize(
    "title, slot, expected",
    [
        ("Day 5", None, "day_5.md"),
        ("Hello, World!", None, "hello__world_.md"),
        ("Über Weihnachten", None, "_ber_weihnachten.md"),
        ("Day 5", 5, "text_5_day_5.md"),
        ("", None, ".md"),
    ],
)
def test_export_filename(title, slot, expected):
    assert export_filename(title, slot) == expected


def test_document_round_trip_with_blank_lines_in_content():
    content = "Intro\n\n## Part\n\n**bold**\n"
    doc = markdown_document("Title", content)
    assert doc == "# Title\n\nIntro\n\n## Part\n\n**bold**\n"
    assert parse_markdown_document(doc) == ("Title", content)


def test_document_round_trip_with_empty_fields():
    assert parse_markdown_document(markdown_document("", "")) == ("", "")


def test_parse_rejects_foreign_documents():
    with pytest.raises(ValueError):
        parse_markdown_document("no heading")
    with pytest.raises(ValueError):
        parse_markdown_document("# heading only")


def test_write_exports_creates_directory(tmp_path):
    target = tmp_path / "out"
    files = [ExportedFile("text_1_a.md", "# A\n\nä"), ExportedFile("text_2_b.md", "# B\n\n")]

    paths = write_exports(str(target), files)

    assert [p.rsplit("/", 1)[-1].rsplit("\\", 1)[-1] for p in paths] == ["text_1_a.md", "text_2_b.md"]
    assert (target / "text_1_a.md").read_bytes() == "# A\n\nä".encode("utf-8")
