from pathlib import Path

import pandas as pd

TABLE_SUFFIXES = (".tsv", ".tab", ".txt", ".csv", ".xlsx")
ZIP_SUFFIXES = (".gz", ".bz2", ".xz", ".zip")


def _table_suffix(path: Path) -> str:
    """Table extension of a file, ignoring a trailing compression suffix."""
    suffixes = [s.lower() for s in path.suffixes]
    if suffixes and suffixes[-1] in ZIP_SUFFIXES:
        suffixes = suffixes[:-1]
    return suffixes[-1] if suffixes else ""


def track_name(path: Path) -> str:
    """File name without table and compression extensions, used as track id."""
    name = path.name
    for suffix in reversed(path.suffixes):
        if suffix.lower() in TABLE_SUFFIXES + ZIP_SUFFIXES:
            name = name[: -len(suffix)]
        else:
            break
    return name


def find_tracks(input_dir: Path) -> dict:
    """Discover sequence, gene, feat and link tables in the input directory.

    Files are recognised by name (case-insensitive) and must have one of the
    TABLE_SUFFIXES, optionally compressed:
        *seqs*      sequence table (seq_id, length, optional bin_id); at most one
        *genes*     gene tracks
        *feats*     other feat tracks
        *links*     link tracks (seq_id1, start1, end1, seq_id2, start2, end2)

    Each track is named after its file, e.g. ``emale_genes.tsv`` -> ``emale_genes``.

    Returns a dict:
        {"seqs": Path | None, "genes": {name: Path}, "feats": {...}, "links": {...}}
    """
    tables = sorted(
        p for p in input_dir.iterdir()
        if p.is_file() and not p.name.startswith("~$") and _table_suffix(p) in TABLE_SUFFIXES
    )

    def find_all(key):
        return {track_name(p): p for p in tables if key in track_name(p).lower()}

    seq_files = list(find_all("seqs").values())
    if len(seq_files) > 1:
        raise ValueError(
            "Multiple sequence tables found: " + ", ".join(p.name for p in seq_files)
        )

    files = {
        "seqs": seq_files[0] if seq_files else None,
        "genes": find_all("genes"),
        "feats": find_all("feats"),
        "links": find_all("links"),
    }
    if files["seqs"] is None and not any(files[k] for k in ("genes", "feats", "links")):
        raise FileNotFoundError(
            f"No '*seqs*', '*genes*', '*feats*' or '*links*' tables found in {input_dir}"
        )
    return files


def read_table(path: Path) -> pd.DataFrame:
    """Read a CSV, Excel or tab-separated table based on its extension."""
    suffix = _table_suffix(path)
    if suffix == ".csv":
        return pd.read_csv(path)
    if suffix == ".xlsx":
        return pd.read_excel(path)
    return pd.read_csv(path, sep="\t")


def load_tracks(files: dict) -> dict:
    """Read the tables found by find_tracks into DataFrames (same structure)."""
    loaded = {"seqs": None}
    if files.get("seqs") is not None:
        print(f"  seqs: {files['seqs'].name}")
        loaded["seqs"] = read_table(files["seqs"])
    for role in ("genes", "feats", "links"):
        loaded[role] = {}
        for name, path in files.get(role, {}).items():
            df = read_table(path)
            print(f"  {role}: {name} ({len(df)} rows)")
            loaded[role][name] = df
    return loaded


def layout_tables(layout) -> dict:
    """All current tables of a layout: seqs first, then every track."""
    sheets = {"seqs": layout.get_seqs()}
    for track_id in layout.feat_track_ids():
        sheets[track_id] = layout.get_feats(track_id)
    for track_id in layout.link_track_ids():
        sheets[track_id] = layout.get_links(track_id)
    return sheets


def save_tables(sheets: dict, output_dir: Path):
    """Write each table as <name>.tsv into output_dir."""
    for name, df in sheets.items():
        path = output_dir / f"{name}.tsv"
        df.to_csv(path, sep="\t", index=False)
        print(f"  Saved: {path.name}")


def save_excel(sheets: dict, path: Path):
    """Write the laid out tables into one workbook, a sheet per table. Requires openpyxl.

    Args:
        sheets: Output of layout_tables: "seqs" first, then one sheet per feat
            and link track, named after the track.
        path: Output path (.xlsx).
    """
    with pd.ExcelWriter(str(path), engine="openpyxl") as writer:
        for sheet_name, df in sheets.items():
            # Excel caps sheet names at 31 characters
            df.to_excel(writer, sheet_name=sheet_name[:31], index=False)
    print(f"  Saved: {path.name}")
