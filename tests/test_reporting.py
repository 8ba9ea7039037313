import csv

from media_catalog.models import Snapshot
from media_catalog.reporting import CatalogReport
from media_catalog.scanning.filesystem import DiskScanner


def test_summary_counts(fixture_snapshot):
    summary = CatalogReport(fixture_snapshot).summary()

    assert summary["version"] == fixture_snapshot.version
    assert summary["totalRecords"] == 4
    assert summary["mediaTypes"] == {"image": 3, "video": 1}
    assert summary["attributeNames"] == ["rating", "subject", "type"]


def test_summary_top_tags_ordered_by_count_then_name(fixture_snapshot):
    top = CatalogReport(fixture_snapshot).summary(top_tags=3)["topTags"]
    assert top == [
        {"tag": "rating=4", "count": 2},
        {"tag": "sunset", "count": 2},
        {"tag": "coast", "count": 1},
    ]


def test_summary_of_empty_catalog():
    summary = CatalogReport(Snapshot.empty()).summary()
    assert summary["totalRecords"] == 0
    assert summary["totalBytes"] == 0
    assert summary["topTags"] == []


def test_write_csv_one_row_per_record(tmp_path, media_root):
    """Verify the CSV export follows catalog order and flattens tags and attributes."""
    snapshot = Snapshot.create(DiskScanner().scan(media_root))
    output_csv = tmp_path / "report.csv"

    written = CatalogReport(snapshot).write_csv(output_csv)
    assert written == 4

    with open(output_csv, "r", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))

    assert [row["Relative Path"] for row in rows] == [r.relative_path for r in snapshot.media]
    sunset = next(row for row in rows if row["Relative Path"].startswith("sunset"))
    assert sunset["Media Type"] == "image"
    assert sunset["Size (bytes)"] == "3"
    assert sunset["Tags"] == "sunset coast location=okinawa rating=5"
    assert sunset["Attributes"] == "location=okinawa;rating=5"
