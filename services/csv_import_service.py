"""Bulk idea import from a CSV file with a ``title`` and optional ``description`` column."""
import csv
import io
import logging
from typing import List, Union

from pydantic import ValidationError as PydanticValidationError

from core.config import settings
from core.errors import ValidationError
from db.storage.base import Storage
from schemas.idea_schema import CsvImportResult, IdeaCreate
from schemas.user_schema import UserInDB
from services import access_policy
from services.idea_service import require_creator
from utils.timing import timeit

logger = logging.getLogger(__name__)


def _decode(content: Union[str, bytes]) -> str:
    if isinstance(content, bytes):
        try:
            return content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationError("CSV file must be UTF-8 encoded")
    return content.lstrip("\ufeff")


def parse_ideas_csv(content: Union[str, bytes], max_rows: int = None) -> List[IdeaCreate]:
    """Validate every row up front; nothing is imported unless all rows pass."""
    max_rows = max_rows or settings.CSV_IMPORT_MAX_ROWS
    reader = csv.DictReader(io.StringIO(_decode(content)))
    headers = {(h or "").strip().lower(): h for h in (reader.fieldnames or [])}
    if "title" not in headers:
        raise ValidationError("CSV must have a 'title' column")

    ideas: List[IdeaCreate] = []
    errors: List[str] = []
    # header is line 1
    for line_no, row in enumerate(reader, start=2):
        title = (row.get(headers["title"]) or "").strip()
        description = (row.get(headers["description"]) or "").strip() if "description" in headers else ""
        if not title and not description:
            continue
        if len(ideas) + len(errors) >= max_rows:
            raise ValidationError(f"CSV can contain at most {max_rows} ideas")
        try:
            ideas.append(IdeaCreate(title=title, description=description))
        except PydanticValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors())
            errors.append(f"row {line_no}: invalid {fields}")

    if errors:
        raise ValidationError("; ".join(errors))
    if not ideas:
        raise ValidationError("CSV file contains no ideas")
    return ideas


@timeit()
async def import_ideas_csv(current_user: UserInDB, content: Union[str, bytes], storage: Storage) -> CsvImportResult:
    require_creator(current_user, "import ideas")
    access_policy.require_premium_access(current_user)
    rows = parse_ideas_csv(content)
    ideas = await storage.create_ideas_bulk(current_user.id, rows)
    logger.info(f"Imported {len(ideas)} ideas from CSV for creator {current_user.id}")
    return CsvImportResult(imported=len(ideas), ideas=ideas)
