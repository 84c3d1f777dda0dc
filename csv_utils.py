import csv
import io
from typing import Iterable, Any, Sequence, Callable, Optional
from fastapi.responses import StreamingResponse

def decode_csv_bytes(data: bytes) -> str:
    # spreadsheet exports: UTF-8 with BOM, plain UTF-8, then Windows-1252
    for enc in ("utf-8-sig", "utf-8", "cp1252"):
        try:
            return data.decode(enc)
        except UnicodeDecodeError:
            continue
    return data.decode("utf-8", errors="replace")


def normalize_header(h: str) -> str:
    h = (h or "").strip()
    mapping = {
        "name": "name",
        "equipment": "name",
        "equipment name": "name",
        "code": "code",
        "type code": "code",
        "equipment code": "code",
        "category": "category",
        "class": "category",
        "description": "description",
        "desc": "description",
        "notes": "description",
    }
    key = h.lower()
    return mapping.get(h, mapping.get(key, h))


def _iso(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


MOVEMENT_COLUMNS: Sequence[tuple[str, Callable[[Any], str]]] = [
    ("id", lambda m: str(getattr(m, "id", ""))),
    ("created_at", lambda m: _iso(getattr(m, "created_at", None))),
    ("movement_type", lambda m: str(getattr(m, "movement_type", ""))),
    ("reference_kind", lambda m: str(getattr(m, "reference_kind", ""))),
    ("reference_id", lambda m: str(getattr(m, "reference_id", ""))),
    ("lot_id", lambda m: str(getattr(m, "lot_id", ""))),
    ("base_id", lambda m: str(getattr(m, "base_id", ""))),
    ("equipment_type_id", lambda m: str(getattr(m, "equipment_type_id", ""))),
    ("quantity_change", lambda m: str(getattr(m, "quantity_change", ""))),
    ("balance_after", lambda m: str(getattr(m, "balance_after", ""))),
    ("performed_by", lambda m: str(getattr(m, "performed_by", ""))),
]


def rows_to_csv_response(
    rows: Iterable[Any],
    *,
    filename: str = "movements_export.csv",
    columns: Optional[Sequence[tuple[str, Callable[[Any], str]]]] = None,
) -> StreamingResponse:
    """
    Stream ``rows`` as a CSV download. Works with ORM rows or pydantic
    models alike, anything with attribute access.
    """

    if columns is None:
        columns = MOVEMENT_COLUMNS

    def generate():
        buf = io.StringIO()
        w = csv.writer(buf)

        w.writerow([h for h, _ in columns])
        yield buf.getvalue()
        buf.seek(0)
        buf.truncate(0)

        for r in rows:
            w.writerow([getter(r) for _, getter in columns])
            yield buf.getvalue()
            buf.seek(0)
            buf.truncate(0)

    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return StreamingResponse(generate(), media_type="text/csv; charset=utf-8", headers=headers)

def csv_bytes_to_rows(data: bytes) -> tuple[list[dict[str, str]], str | None]:
    """
    Parse CSV bytes into a list of dict rows keyed by normalized header.
    Returns (rows, None) on success, ([], message) when there is no header.
    """
    text = decode_csv_bytes(data)
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        return [], "CSV header not found"

    field_map = {fn: normalize_header(fn) for fn in reader.fieldnames}

    rows: list[dict[str, str]] = []
    for raw in reader:
        row: dict[str, str] = {}
        for k, v in raw.items():
            nk = field_map.get(k, k)
            row[nk] = v if v is not None else ""
        rows.append(row)

    return rows, None
