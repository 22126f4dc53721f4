"""Named feat and link tracks.

A layout holds one sequence table plus any number of feat and link tracks.
Each track is addressed by its ``track_id`` (or its position among the tracks
of the same type) and keeps its validated input table, so projections can
always be recomputed from the original sequence-local coordinates.

Naming rules for :func:`as_tracks`:

  single table      named after the role ("genes", "feats", "links")
  list of tables    "<role>_1", "<role>_2", ...
  mapping           keys are used as given

"seqs" is reserved and names must be unique across all tracks of a layout.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .base import (
    FEAT_COLS,
    LINK_COLS,
    RESERVED_TRACK_NAMES,
    STRAND_CODES,
    UNSTRANDED,
)
from .errors import ConfigurationError, Diagnostic


@dataclass(frozen=True, eq=False)
class Track:
    track_id: str
    track_type: str  # "feats" or "links"
    table: pd.DataFrame
    source: str = "feats"
    # rows dropped while resolving the table against parent feats
    diagnostic: Diagnostic | None = None


def as_tracks(tables, default_name: str, reserved=()) -> dict[str, pd.DataFrame]:
    """Turn a table, a list of tables or a name -> table mapping into named tracks."""
    if tables is None:
        return {}
    if isinstance(tables, pd.DataFrame):
        named = {default_name: tables}
    elif isinstance(tables, Mapping):
        named = {str(name): table for name, table in tables.items()}
        if len(named) != len(tables):
            raise ConfigurationError(f"Duplicate {default_name} track names after conversion to str")
    else:
        tables = list(tables)
        if len(tables) == 1:
            named = {default_name: tables[0]}
        else:
            named = {f"{default_name}_{i}": table for i, table in enumerate(tables, start=1)}

    taken = set(reserved) | set(RESERVED_TRACK_NAMES)
    clash = [name for name in named if name in taken]
    if clash:
        raise ConfigurationError(
            f"Track name(s) already in use: {', '.join(clash)}. "
            "Pass tracks as a mapping to give them unique names."
        )
    for name, table in named.items():
        if not isinstance(table, pd.DataFrame):
            raise ConfigurationError(
                f"Track '{name}' must be a pandas DataFrame, got {type(table).__name__}"
            )
    return named


def require_vars(table: pd.DataFrame, columns, what: str):
    missing = [col for col in columns if col not in table.columns]
    if missing:
        raise ConfigurationError(
            f"Required column(s) missing from {what}: {', '.join(missing)}"
        )


def normalize_strand(values: pd.Series, what: str = "table") -> pd.Series:
    """Map strand spellings (+/-/., 1/-1/0, True/False, ...) to +, - or ."""
    text = values.astype("string").str.strip().str.lower()
    text = text.str.replace(r"\.0$", "", regex=True)  # 1.0 / -1.0 from float columns
    codes = text.map(STRAND_CODES)
    codes = codes.where(text.notna() & (text != ""), UNSTRANDED)
    bad = text[codes.isna()].unique()
    if len(bad):
        raise ConfigurationError(
            f"Unrecognised strand value(s) in {what}: {', '.join(map(str, bad[:5]))}"
        )
    return codes.astype(object)


def as_positions(values: pd.Series, column: str, what: str) -> pd.Series:
    numbers = pd.to_numeric(values, errors="coerce")
    if numbers.isna().any():
        raise ConfigurationError(f"Non-numeric or missing values in {what} column '{column}'")
    if (numbers % 1 == 0).all():
        return numbers.astype("int64")
    return numbers


def prepare_feats(table: pd.DataFrame, track_id: str) -> pd.DataFrame:
    """Validate a feat table and fill in feat_id, strand and track_id."""
    what = f"feat track '{track_id}'"
    require_vars(table, FEAT_COLS, what)
    df = table.reset_index(drop=True).copy()
    df["seq_id"] = df["seq_id"].astype(str)
    if "bin_id" in df.columns:
        df["bin_id"] = df["bin_id"].astype(str)
    for col in ("start", "end"):
        df[col] = as_positions(df[col], col, what)

    reversed_rows = df["start"] > df["end"]
    if reversed_rows.any():
        raise ConfigurationError(
            f"{reversed_rows.sum()} row(s) in {what} have start > end; "
            "give the interval as start <= end and the direction in 'strand'"
        )

    if "strand" in df.columns:
        df["strand"] = normalize_strand(df["strand"], what)
    else:
        df["strand"] = UNSTRANDED
    df["strand"] = df["strand"].astype(object)

    if "feat_id" not in df.columns:
        df["feat_id"] = [f"{track_id}_{i}" for i in range(1, len(df) + 1)]
    else:
        df["feat_id"] = df["feat_id"].astype(str)
    df["track_id"] = track_id
    return df


def prepare_links(table: pd.DataFrame, track_id: str) -> pd.DataFrame:
    """Validate a link table. Sides given as start > end are kept as reversed."""
    what = f"link track '{track_id}'"
    require_vars(table, LINK_COLS, what)
    df = table.reset_index(drop=True).copy()
    for col in ("seq_id1", "seq_id2"):
        df[col] = df[col].astype(str)
    for col in ("bin_id1", "bin_id2"):
        if col in df.columns:
            df[col] = df[col].astype(str)
    for col in ("start1", "end1", "start2", "end2"):
        df[col] = as_positions(df[col], col, what)
    if "strand" in df.columns:
        df["strand"] = normalize_strand(df["strand"], what)
    df["track_id"] = track_id
    return df


def resolve_track_id(tracks: Mapping[str, Track], track_id, track_type: str) -> Track:
    """Look up a track by name or by position among tracks of ``track_type``."""
    candidates = [track for track in tracks.values() if track.track_type == track_type]
    if isinstance(track_id, (int, np.integer)) and not isinstance(track_id, bool):
        if 0 <= track_id < len(candidates):
            return candidates[track_id]
        raise ConfigurationError(
            f"No {track_type} track at position {track_id} ({len(candidates)} available)"
        )
    for track in candidates:
        if track.track_id == track_id:
            return track
    available = ", ".join(track.track_id for track in candidates) or "none"
    raise ConfigurationError(
        f"Unknown {track_type} track '{track_id}'. Available: {available}"
    )


def track_info(tracks: Mapping[str, Track], n_seqs: int | None = None) -> pd.DataFrame:
    """Summarise tracks: id, type, number of rows and position within type."""
    rows = []
    if n_seqs is not None:
        rows.append({"track_id": "seqs", "track_type": "seqs", "n": n_seqs, "i": 0})
    position = {"feats": 0, "links": 0}
    for track in tracks.values():
        rows.append({
            "track_id": track.track_id,
            "track_type": track.track_type,
            "n": len(track.table),
            "i": position[track.track_type],
        })
        position[track.track_type] += 1
    return pd.DataFrame(rows, columns=["track_id", "track_type", "n", "i"])


def swap_query(table: pd.DataFrame) -> pd.DataFrame:
    """Swap query and subject columns of a blast-like table.

    Columns come in pairs ``name``/``name2`` (``seq_id``/``seq_id2``,
    ``start``/``start2``) or ``name1``/``name2`` for link tables. Each pair
    trades places; a table without pairs is returned unchanged.
    """
    cols = list(table.columns)
    pairs = []
    for col in cols:
        if not isinstance(col, str) or not col.endswith("2") or len(col) < 2:
            continue
        stem = col[:-1]
        if stem in cols and not stem[-1].isdigit():
            pairs.append((stem, col))
        elif f"{stem}1" in cols:
            pairs.append((f"{stem}1", col))
    if not pairs:
        return table

    print(
        "Swapping query/subject-associated columns: "
        + ", ".join(f"{a}<->{b}" for a, b in pairs)
    )
    mapping = {}
    for a, b in pairs:
        mapping[a] = b
        mapping[b] = a
    return table.rename(columns=mapping)[cols]
