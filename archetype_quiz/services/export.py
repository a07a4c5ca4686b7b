import csv
import io
from datetime import datetime
from typing import Iterable

from archetype_quiz.schemas.records import SubmissionRecord

CSV_HEADER = "Email,Name,Archetype,Confidence,Completed At,IP Address"
CSV_FILENAME = "quiz-submissions.csv"


def _format_timestamp(value: datetime) -> str:
    # ISO 8601 with millisecond precision and a Z suffix, e.g. 2024-05-01T12:30:00.000Z
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def render_submissions_csv(submissions: Iterable[SubmissionRecord]) -> str:
    """
    Renders submissions as CSV, one quoted row per submission under CSV_HEADER.

    Every field is double-quote wrapped and rows are joined with "\\n" with no
    trailing newline. Embedded quotes are doubled, so values containing quotes
    or commas stay parseable; other values come out exactly as
    `"a","b",...`.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for sub in submissions:
        writer.writerow([
            sub.email,
            sub.name,
            sub.archetype,
            sub.confidence.value,
            _format_timestamp(sub.completed_at),
            sub.ip_address or "",
        ])
    rows = buffer.getvalue().rstrip("\n")
    return f"{CSV_HEADER}\n{rows}" if rows else CSV_HEADER
