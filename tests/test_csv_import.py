"""
CSV idea import.
"""
import pytest

from core.errors import ForbiddenError, PremiumRequiredError, ValidationError
from services.csv_import_service import import_ideas_csv, parse_ideas_csv


@pytest.mark.unit
class TestParseIdeasCsv:

    def test_basic_file(self):
        rows = parse_ideas_csv("title,description\nFirst,One\nSecond,\n")
        assert [(r.title, r.description) for r in rows] == [("First", "One"), ("Second", "")]

    def test_bom_and_header_case(self):
        content = "\ufeffTitle,DESCRIPTION\nHello,World\n".encode("utf-8")
        rows = parse_ideas_csv(content)
        assert rows[0].title == "Hello"
        assert rows[0].description == "World"

    def test_title_only_column(self):
        assert [r.title for r in parse_ideas_csv("title\nA\nB\n")] == ["A", "B"]

    def test_blank_rows_are_skipped(self):
        rows = parse_ideas_csv("title,description\nA,x\n,\n\nB,y\n")
        assert [r.title for r in rows] == ["A", "B"]

    def test_quoted_commas(self):
        rows = parse_ideas_csv('title,description\n"Tips, tricks","Short, sweet"\n')
        assert rows[0].title == "Tips, tricks"

    def test_missing_title_column(self):
        with pytest.raises(ValidationError):
            parse_ideas_csv("name,description\nA,x\n")

    def test_empty_file(self):
        with pytest.raises(ValidationError):
            parse_ideas_csv("title,description\n")

    def test_invalid_rows_are_reported_by_line(self):
        long_title = "x" * 101
        with pytest.raises(ValidationError) as exc_info:
            parse_ideas_csv(f"title,description\nGood,ok\n,orphan description\n{long_title},\n")
        detail = exc_info.value.detail
        assert "row 3: invalid title" in detail
        assert "row 4: invalid title" in detail

    def test_row_limit(self):
        content = "title\n" + "".join(f"Idea {n}\n" for n in range(4))
        assert len(parse_ideas_csv(content, max_rows=4)) == 4
        with pytest.raises(ValidationError):
            parse_ideas_csv(content, max_rows=3)

    def test_non_utf8_bytes(self):
        with pytest.raises(ValidationError):
            parse_ideas_csv(b"title\n\xff\xfe\n")


@pytest.mark.integration
class TestImportIdeasCsv:

    async def test_premium_creator_imports_all_rows(self, storage, premium_creator):
        result = await import_ideas_csv(premium_creator, b"title\nOne\nTwo\nThree\n", storage)
        assert result.imported == 3
        stored = await storage.get_ideas(creator_id=premium_creator.id)
        assert sorted(i.title for i in stored) == ["One", "Three", "Two"]
        assert all(i.status == "approved" for i in stored)
        assert sorted(i.current_position for i in stored) == [1, 2, 3]

    async def test_free_creator_is_blocked(self, storage, creator):
        with pytest.raises(PremiumRequiredError):
            await import_ideas_csv(creator, b"title\nOne\n", storage)

    async def test_audience_is_blocked(self, storage, make_user):
        premium_audience = await make_user(subscription="premium")
        with pytest.raises(ForbiddenError):
            await import_ideas_csv(premium_audience, b"title\nOne\n", storage)

    async def test_invalid_file_imports_nothing(self, storage, premium_creator):
        with pytest.raises(ValidationError):
            await import_ideas_csv(premium_creator, f"title\nFine\n{'y' * 150}\n".encode(), storage)
        assert await storage.get_ideas(creator_id=premium_creator.id) == []
