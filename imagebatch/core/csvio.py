from __future__ import annotations

import io
from typing import Iterable

import pandas as pd

from imagebatch.core.errors import FormatError
from imagebatch.domain import Item

NAME_COLUMN = "Product Name"
INPUT_COLUMN = "Input Image Urls"
OUTPUT_COLUMN = "Output Image Urls"
REQUIRED_COLUMNS = (NAME_COLUMN, INPUT_COLUMN)
ARTIFACT_COLUMNS = [NAME_COLUMN, INPUT_COLUMN, OUTPUT_COLUMN]


def _read_frame(data: bytes) -> pd.DataFrame:
    try:
        return pd.read_csv(
            io.BytesIO(data),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise FormatError() from exc


def read_batch_table(data: bytes) -> list[dict[str, str]]:
    """Parse an uploaded batch table into a list of row mappings."""

    dataframe = _read_frame(data).fillna("")
    dataframe.columns = [str(col).strip() for col in dataframe.columns]
    missing = [col for col in REQUIRED_COLUMNS if col not in dataframe.columns]
    if missing:
        raise FormatError(f"CSV Format error: missing column(s) {', '.join(missing)}")
    return [{key: str(value) for key, value in row.items()} for row in dataframe.to_dict(orient="records")]


def build_artifact(items: Iterable[Item]) -> bytes:
    """Serialise the final per-item outcome table."""

    records = [
        {
            NAME_COLUMN: item.name,
            INPUT_COLUMN: ",".join(item.sources),
            OUTPUT_COLUMN: ",".join(item.output_urls),
        }
        for item in items
    ]
    dataframe = pd.DataFrame(records, columns=ARTIFACT_COLUMNS)
    return dataframe.to_csv(index=False).encode("utf-8")


def parse_artifact(data: bytes) -> list[dict[str, object]]:
    dataframe = _read_frame(data).fillna("")
    rows: list[dict[str, object]] = []
    for row in dataframe.to_dict(orient="records"):
        outputs = str(row.get(OUTPUT_COLUMN) or "")
        rows.append(
            {
                "name": str(row[NAME_COLUMN]),
                "sources": [url.strip() for url in str(row[INPUT_COLUMN]).split(",") if url.strip()],
                "outputs": [url.strip() for url in outputs.split(",") if url.strip()],
            }
        )
    return rows
