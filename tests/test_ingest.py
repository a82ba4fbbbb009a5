"""Tests for spreadsheet parsing and the pro ingest pipeline."""

import io

import pandas as pd
import pytest
from sqlalchemy import func, select

from crm import models
from crm.parsers import ParseError, map_columns, normalize_header, parse_file
from crm.pipelines.ingest import (
    IngestError,
    import_pro_rows,
    prepare_pro_fields,
    qualification,
    upsert_pro,
)

CSV = (
    "Agent Name,Phone Number,Email Address,City,State,Zip Code,Years Experience,Volume,Favorite Color\n"
    "Jane Doe,(512) 555-0101,JANE@Example.com,\"Austin, Round Rock\",Texas,78701,12,\"$2,500,000\",blue\n"
    "No Phone,,nophone@example.com,Austin,TX,,3,,green\n"
)


class TestParsers:

    def test_parse_csv_and_map_columns(self):
        rows = map_columns(parse_file(io.BytesIO(CSV.encode()), "pros.csv"))
        assert len(rows) == 2
        first = rows[0]
        assert first["full_name"] == "Jane Doe"
        assert first["phone"] == "(512) 555-0101"
        assert first["cities"] == "Austin, Round Rock"
        assert first["total_volume_12mo"] == "$2,500,000"
        assert "favorite_color" not in first
        assert rows[1]["phone"] is None

    def test_parse_excel(self):
        buffer = io.BytesIO()
        pd.DataFrame([{"Name": "Sam Lee", "Mobile": "5125550102"}]).to_excel(buffer, index=False)
        buffer.seek(0)
        rows = map_columns(parse_file(buffer, "pros.xlsx"))
        assert rows == [{"full_name": "Sam Lee", "phone": "5125550102"}]

    def test_explicit_mapping_wins(self):
        rows = map_columns([{"Cell Phone": "5125550103"}], mapping={"Cell Phone": "phone"})
        assert rows == [{"phone": "5125550103"}]

    def test_unsupported_file_type(self):
        with pytest.raises(ParseError, match="Unsupported file type"):
            parse_file(io.BytesIO(b"%PDF"), "resume.pdf")

    def test_header_only_csv_is_empty(self):
        with pytest.raises(ParseError, match="empty"):
            parse_file(io.BytesIO(b"name,phone\n"), "pros.csv")

    def test_normalize_header(self):
        assert normalize_header(" Zip Code (5) ") == "zip_code_5"


class TestPrepareProFields:
    """Validation and normalization of raw pro data."""

    def test_normalizes_fields(self):
        fields = prepare_pro_fields({
            "full_name": "  Jane   Doe ",
            "phone": "(512) 555-0101",
            "email": "JANE@Example.com",
            "cities": "Austin, Round Rock",
            "states": "Texas",
            "zip_codes": "78701",
            "experience": "120",
            "total_volume_12mo": "$2,500,000",
        })
        assert fields["full_name"] == "Jane Doe"
        assert fields["first_name"] == "Jane"
        assert fields["last_name"] == "Doe"
        assert fields["phone"] == "+15125550101"
        assert fields["email"] == "jane@example.com"
        assert fields["cities"] == ["Austin", "Round Rock"]
        assert fields["states"] == ["TX"]
        assert fields["experience"] == 80
        assert fields["total_volume_12mo"] == 2_500_000.0
        assert fields["status"] == "qualified"

    def test_name_from_first_and_last(self):
        fields = prepare_pro_fields({"first_name": "Sam", "last_name": "Lee", "phone": "5125550102"})
        assert fields["full_name"] == "Sam Lee"
        assert fields["email"] == "sam.lee@placeholder.com"
        assert fields["status"] == "new"

    def test_name_required(self):
        with pytest.raises(IngestError, match="Name is required"):
            prepare_pro_fields({"phone": "5125550102"})

    def test_phone_required(self):
        with pytest.raises(IngestError, match="Phone is required"):
            prepare_pro_fields({"full_name": "Sam Lee", "phone": None})

    def test_list_limits(self):
        fields = prepare_pro_fields({
            "full_name": "Sam Lee",
            "phone": "5125550102",
            "zip_codes": [str(78000 + i) for i in range(150)],
        })
        assert len(fields["zip_codes"]) == 100

    def test_explicit_status_kept(self):
        fields = prepare_pro_fields({"full_name": "Sam Lee", "phone": "5125550102", "status": "active"})
        assert fields["status"] == "active"

    def test_coordinates_parsed(self):
        fields = prepare_pro_fields({"full_name": "Sam Lee", "phone": "5125550102", "latitude": "30.2672", "longitude": "-97.7431"})
        assert fields["latitude"] == 30.2672
        assert fields["longitude"] == -97.7431

    def test_invalid_coordinate_rejected(self):
        with pytest.raises(IngestError, match="Invalid latitude"):
            prepare_pro_fields({"full_name": "Sam Lee", "phone": "5125550102", "latitude": "N/A"})


@pytest.mark.parametrize(
    "fields, expected",
    [
        ({"full_name": "A", "phone": "1", "cities": ["x"], "states": ["y"], "zip_codes": ["z"]}, (100.0, "qualified")),
        ({"full_name": "A", "phone": "1", "cities": ["x"]}, (60.0, "qualifying")),
        ({"full_name": "A", "phone": "1"}, (40.0, "new")),
    ],
)
def test_qualification(fields, expected):
    assert qualification(fields) == expected


class TestUpsert:

    async def test_creates_then_updates_by_phone(self, session):
        pro, created = await upsert_pro(
            session,
            {"full_name": "Jane Doe", "phone": "512-555-0101", "cities": ["Austin"]},
            metadata={"form": "agent"},
        )
        assert created
        assert pro.metadata_ == {"form": "agent"}

        same, created = await upsert_pro(
            session,
            {"full_name": "Jane Doe", "phone": "(512) 555-0101", "brokerage": "KW", "cities": [], "status": "new"},
            metadata={"campaign": "spring"},
        )
        assert not created
        assert same.id == pro.id
        assert same.brokerage == "KW"
        assert same.cities == ["Austin"]
        assert same.metadata_ == {"form": "agent", "campaign": "spring"}

        count = (await session.execute(select(func.count(models.Pro.id)))).scalar_one()
        assert count == 1

    async def test_import_reports_row_errors(self, session):
        rows = map_columns(parse_file(io.BytesIO(CSV.encode()), "pros.csv"))
        report = await import_pro_rows(session, rows, source="import:pros.csv")

        assert report.total == 2
        assert report.created == 1
        assert report.failed == 1
        assert report.success == 1
        assert report.errors == [{"row": 2, "error": "Phone is required"}]

        pro = (await session.execute(select(models.Pro))).scalar_one()
        assert pro.source == "import:pros.csv"
        assert pro.states == ["TX"]

    async def test_reimport_updates_existing(self, session):
        rows = [{"full_name": "Jane Doe", "phone": "5125550101"}]
        await import_pro_rows(session, rows)
        report = await import_pro_rows(session, [{**rows[0], "brokerage": "eXp"}])
        assert report.updated == 1
        assert report.created == 0

    async def test_failed_row_keeps_earlier_rows(self, session):
        rows = [
            {"full_name": "Jane Doe", "phone": "5125550101", "latitude": "30.27"},
            {"full_name": "Sam Lee", "phone": "5125550102", "latitude": "N/A"},
            {"full_name": "Ana Cruz", "phone": "5125550103"},
        ]
        report = await import_pro_rows(session, rows)

        assert report.created == 2
        assert report.failed == 1
        assert report.errors == [{"row": 2, "error": "Invalid latitude: 'N/A'"}]

        stored = (await session.execute(select(models.Pro.full_name).order_by(models.Pro.id))).scalars().all()
        assert stored == ["Jane Doe", "Ana Cruz"]

    async def test_database_failure_rolls_back_only_its_row(self, session):
        rows = [
            {"full_name": "Jane Doe", "phone": "5125550101"},
            {"full_name": "Sam Lee", "phone": "5125550102", "pipeline_stage": {"stage": "new"}},
            {"full_name": "Ana Cruz", "phone": "5125550103"},
        ]
        report = await import_pro_rows(session, rows)

        assert report.created == 2
        assert report.failed == 1
        assert report.errors[0]["row"] == 2
        assert report.errors[0]["error"].startswith("Failed to store pro")
        count = (await session.execute(select(func.count(models.Pro.id)))).scalar_one()
        assert count == 2
