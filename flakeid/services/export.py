import csv
import io

from flakeid.utils.parser import DecodeResult

CSV_COLUMNS = [
    "line",
    "id",
    "timestamp_ms",
    "timestamp_iso",
    "timestamp_offset",
    "node_primary",
    "node_secondary",
    "sequence",
    "total_bits_exceeded",
    "timestamp_field_exceeded",
    "error",
]


def render_csv(results: list[DecodeResult]) -> str:
    """Render batch decode results as CSV, one row per input line.

    Rejected lines keep their input text in the id column and carry the
    message in the error column.
    """
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for result in results:
        row = {"line": result.line, "id": result.text, "error": result.error or ""}
        if result.parsed is not None:
            row.update(result.parsed.as_record())
        writer.writerow(row)
    return buffer.getvalue()


def render_text(ids: list[str]) -> str:
    return "\n".join(ids)
