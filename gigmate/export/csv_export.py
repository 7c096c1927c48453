from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime
from pathlib import Path

from gigmate.core.money import cents_to_dollars, duration_hours
from gigmate.core.types import ShiftRecord

CSV_COLUMNS = (
    "id",
    "platform",
    "started_at",
    "ended_at",
    "hours",
    "miles",
    "gross_usd",
    "tips_usd",
    "fuel_cost_usd",
    "notes",
)
LINE_END = "\r\n"


def _iso_utc(value: datetime | None) -> str:
    if value is None:
        return ""
    moment = value.astimezone(UTC)
    return f"{moment:%Y-%m-%dT%H:%M:%S}.{moment.microsecond // 1000:03d}Z"


def _quote_notes(notes: str | None) -> str:
    if not notes:
        return ""
    return '"' + notes.replace('"', '""') + '"'


def entry_row(record: ShiftRecord) -> list[str]:
    if record.started_at is not None and record.ended_at is not None:
        hours = duration_hours(record.started_at, record.ended_at)
    else:
        hours = 0.0
    return [
        record.id or "",
        record.platform.value,
        _iso_utc(record.started_at),
        _iso_utc(record.ended_at),
        f"{hours:.2f}",
        f"{record.miles:.2f}",
        cents_to_dollars(record.gross_cents),
        cents_to_dollars(record.tips_cents),
        cents_to_dollars(record.fuel_cost_cents),
        _quote_notes(record.notes),
    ]


def render_entries_csv(records: Iterable[ShiftRecord]) -> str:
    """Render entries as CSV text.

    Only the notes column can hold free text, and it is quoted only when
    non-empty; every other column is generated and never needs quoting.
    """
    # Joined by hand: csv.writer cannot quote one column only when it is non-empty.
    lines = [",".join(CSV_COLUMNS)]
    lines.extend(",".join(entry_row(record)) for record in records)
    return LINE_END.join(lines)


def export_filename(today: date) -> str:
    return f"gigmate-entries-{today:%Y-%m-%d}.csv"


def write_entries_csv(records: Iterable[ShiftRecord], output_path: Path) -> dict[str, object]:
    records = list(records)
    output_path = output_path.expanduser()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8", newline="") as handle:
        handle.write(render_entries_csv(records))
    return {
        "output_path": str(output_path),
        "rows_written": len(records),
    }
