import io
import json
import os

import pandas as pd

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}


def detect_delimiter(first_line: str) -> str:
    """Tab when tabs clearly outnumber commas, comma otherwise."""
    tabs = first_line.count("\t")
    commas = first_line.count(",")
    return "\t" if tabs > commas * 1.5 else ","


def _read_delimited(path) -> pd.DataFrame:
    with open(path, "r", encoding="utf-8-sig", newline="") as fh:
        text = fh.read()
    first_line = next((line for line in text.splitlines() if line.strip()), "")
    if not first_line:
        return pd.DataFrame()
    return pd.read_csv(
        io.StringIO(text),
        sep=detect_delimiter(first_line),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
    )


def load_table(path):
    """
    Load one export into a DataFrame with its header row intact.

    CSV/TSV cells come back as strings; spreadsheet cells keep their native
    types so date cells and Excel serials reach the parsers unchanged.
    """
    if path is None:
        return None
    suffix = os.path.splitext(str(path))[1].lower()
    if suffix in EXCEL_SUFFIXES:
        df = pd.read_excel(path, dtype=object, engine="openpyxl")
    else:
        df = _read_delimited(path)
    df.columns = [str(c).strip() for c in df.columns]
    return df.dropna(how="all").reset_index(drop=True)


def load_column_overrides(path):
    """JSON {layout: {field: [header, ...]}} -> dict, or {} when no path."""
    if not path:
        return {}
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: column overrides must be a JSON object")
    return data
