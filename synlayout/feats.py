"""Project feats from sequence-local coordinates into layout coordinates.

A feat ``[start, end]`` on a sequence laid out at ``x_offset`` with window
``[win_start, win_end]`` lands at::

    forward   x = x_offset + start - win_start    xend = x_offset + end - win_start
    reverse   x = x_offset + win_end - end        xend = x_offset + win_end - start

so ``x <= xend`` always holds and the direction of a flipped sequence shows
up in ``display_strand`` instead.  Feats are matched to sequences through
``parent_id``; after a focus a parent can have several windows and a feat
goes to the one it overlaps most.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .base import MARGINAL_POLICIES, MAX_DIAGNOSTIC_EXAMPLES, REVERSE
from .errors import (
    ConfigurationError,
    Diagnostic,
    ReferenceError,
    UnresolvedReferenceWarning,
)
from .seqs import toggle_strand
from .tracks import as_positions, normalize_strand, require_vars


# ── Coordinate transforms ─────────────────────────────────────────────────────

def aa2nuc(start, end):
    """Amino-acid positions to the nucleotide span of their codons."""
    return start * 3 - 2, end * 3


def nuc2aa(start, end):
    return (start + 2) // 3, (end + 2) // 3


def _identity(start, end):
    return start, end


COORD_TRANSFORMS = {"aa2nuc": aa2nuc, "nuc2aa": nuc2aa, "none": _identity}


def get_transform(transform):
    """Resolve a transform name or pass a ``(start, end) -> (start, end)`` callable through."""
    if transform is None or callable(transform):
        return transform
    try:
        return COORD_TRANSFORMS[transform]
    except KeyError:
        raise ConfigurationError(
            f"Unknown coordinate transform '{transform}'. "
            f"Use one of {', '.join(COORD_TRANSFORMS)} or a function"
        ) from None


# ── Shared resolution helpers (also used by the link projector) ──────────────

@dataclass(frozen=True, eq=False)
class ProjectedFeats:
    table: pd.DataFrame
    diagnostic: Diagnostic | None = None


def _check_unambiguous(seqs: pd.DataFrame, ids: pd.Series):
    bins_per_parent = seqs.groupby("parent_id")["bin_id"].nunique()
    ambiguous = bins_per_parent[bins_per_parent > 1].index
    used = ambiguous[ambiguous.isin(ids)]
    if len(used):
        raise ConfigurationError(
            f"seq_id(s) found in more than one bin: {', '.join(map(str, used[:5]))}. "
            "Add a bin_id column to tell them apart"
        )


def locate(seqs: pd.DataFrame, ids, lo, hi, bin_ids=None) -> pd.DataFrame:
    """Find the laid out window of every interval.

    Returns one row per resolved input row, indexed by the input position,
    with the window (``locus_id``, ``win_start``, ``win_end``), its
    placement (``x_offset``, ``y``, ``seq_strand``) and ``outside``: the
    interval misses every window of a focused sequence.
    """
    query = pd.DataFrame({
        "_row": np.arange(len(ids)),
        "parent_id": np.asarray(ids),
        "lo": np.asarray(lo),
        "hi": np.asarray(hi),
    })
    keys = ["parent_id"]
    if bin_ids is not None:
        query["bin_id"] = np.asarray(bin_ids)
        keys = ["bin_id", "parent_id"]
    else:
        _check_unambiguous(seqs, query["parent_id"])

    windows = seqs[
        ["seq_id", "parent_id", "bin_id", "length", "start", "end", "strand", "x_offset", "y"]
    ].rename(columns={
        "seq_id": "locus_id",
        "start": "win_start",
        "end": "win_end",
        "strand": "seq_strand",
    })
    hits = query.merge(windows, on=keys, how="inner")
    hits["overlap"] = (
        np.minimum(hits["hi"], hits["win_end"]) - np.maximum(hits["lo"], hits["win_start"])
    )
    hits = (
        hits.sort_values(["_row", "overlap"], ascending=[True, False], kind="mergesort")
        .drop_duplicates("_row")
    )
    focused = (hits["win_start"] > 0) | (hits["win_end"] < hits["length"])
    hits["outside"] = focused & (hits["overlap"] < 0)
    return hits.set_index("_row").sort_index()


def is_known(ids: pd.Series, bin_ids, catalog: pd.DataFrame | None) -> np.ndarray:
    """Whether each id names a sequence that was registered with the layout."""
    if catalog is None:
        return np.zeros(len(ids), dtype=bool)
    if bin_ids is None:
        return ids.isin(set(catalog["parent_id"])).to_numpy()
    pairs = set(zip(catalog["bin_id"], catalog["parent_id"]))
    return np.array([pair in pairs for pair in zip(bin_ids, ids)], dtype=bool)


def report_unresolved(track_id, ids: pd.Series, strict: bool, warn: bool, target="sequences"):
    """One aggregated diagnostic for all rows that referenced unknown ids."""
    if not len(ids):
        return None
    examples = tuple(pd.unique(ids.astype(str))[:MAX_DIAGNOSTIC_EXAMPLES])
    diagnostic = Diagnostic(str(track_id), len(ids), examples, target)
    if strict:
        raise ReferenceError(
            f"{len(ids)} row(s) in track '{track_id}' reference unknown {target}: "
            + ", ".join(examples)
        )
    if warn:
        warnings.warn(str(diagnostic), UnresolvedReferenceWarning, stacklevel=3)
    return diagnostic


def clip_to_window(lo, hi, win_start, win_end, marginal: str):
    """Apply the marginal policy; returns ``(lo, hi, keep)``.

    ``trim`` also drops intervals that do not touch the window at all.
    """
    if marginal not in MARGINAL_POLICIES:
        raise ConfigurationError(
            f"marginal must be one of {', '.join(MARGINAL_POLICIES)}, got '{marginal}'"
        )
    keep = np.ones(len(lo), dtype=bool)
    if marginal == "trim":
        lo = np.maximum(lo, win_start)
        hi = np.minimum(hi, win_end)
        # nothing left of intervals lying wholly beyond the window
        keep = lo <= hi
    elif marginal == "drop":
        keep = (lo >= win_start) & (hi <= win_end)
    return lo, hi, keep


def mirror(lo, hi, hits: pd.DataFrame):
    """Shared x/xend of sequence-local intervals on the windows in ``hits``."""
    forward = hits["seq_strand"].to_numpy() != REVERSE
    offset = hits["x_offset"].to_numpy()
    win_start = hits["win_start"].to_numpy()
    win_end = hits["win_end"].to_numpy()
    x = np.where(forward, offset + lo - win_start, offset + win_end - hi)
    xend = np.where(forward, offset + hi - win_start, offset + win_end - lo)
    return x, xend


def _whole(values: np.ndarray) -> np.ndarray:
    values = np.round(values, 6)
    if len(values) and np.all(values % 1 == 0):
        return values.astype("int64")
    return values


# ── Feature projector ─────────────────────────────────────────────────────────

def project_feats(
    seqs: pd.DataFrame,
    feats: pd.DataFrame,
    *,
    strict: bool = False,
    marginal: str = "keep",
    known_seqs: pd.DataFrame | None = None,
    transform=None,
    track_id=None,
    warn: bool = True,
) -> ProjectedFeats:
    """Add x, xend, y, bin_id, locus_id and display_strand to a feat table.

    Rows pointing at sequences listed in ``known_seqs`` but no longer laid
    out (picked away or outside the focus) are dropped quietly. Rows pointing
    at sequences never seen raise :class:`ReferenceError` when ``strict``,
    and are otherwise dropped and summarised in one :class:`Diagnostic`.
    """
    table = feats.reset_index(drop=True).copy()
    if track_id is None:
        track_id = table["track_id"].iloc[0] if "track_id" in table.columns and len(table) else "feats"

    fn = get_transform(transform)
    if fn is not None:
        table["start"], table["end"] = fn(table["start"], table["end"])

    bin_ids = table["bin_id"] if "bin_id" in table.columns else None
    hits = locate(seqs, table["seq_id"], table["start"], table["end"], bin_ids)

    missing = np.setdiff1d(np.arange(len(table)), hits.index.to_numpy())
    missing_ids = table["seq_id"].iloc[missing]
    missing_bins = None if bin_ids is None else bin_ids.iloc[missing]
    known = is_known(missing_ids, missing_bins, known_seqs)
    diagnostic = report_unresolved(track_id, missing_ids[~known], strict, warn)

    hits = hits.loc[~hits["outside"]]
    lo, hi, keep = clip_to_window(
        hits["lo"].to_numpy(), hits["hi"].to_numpy(),
        hits["win_start"].to_numpy(), hits["win_end"].to_numpy(),
        marginal,
    )
    hits, lo, hi = hits.loc[keep], lo[keep], hi[keep]

    out = table.loc[hits.index].copy()
    out["start"], out["end"] = lo, hi
    x, xend = mirror(lo, hi, hits)
    out["x"] = x
    out["xend"] = xend
    out["y"] = hits["y"].to_numpy()
    out["bin_id"] = hits["bin_id"].to_numpy()
    out["locus_id"] = hits["locus_id"].to_numpy()
    flipped = hits["seq_strand"].to_numpy() == REVERSE
    out["display_strand"] = np.where(flipped, toggle_strand(out["strand"]), out["strand"])
    return ProjectedFeats(out.reset_index(drop=True), diagnostic)


def unproject_feats(feats: pd.DataFrame, seqs: pd.DataFrame) -> pd.DataFrame:
    """Recover sequence-local start/end from projected x/xend (inverse of the mirror)."""
    windows = seqs[["bin_id", "seq_id", "start", "end", "strand", "x_offset"]].rename(
        columns={"seq_id": "locus_id", "start": "win_start", "end": "win_end", "strand": "seq_strand"}
    )
    merged = feats[["bin_id", "locus_id", "x", "xend"]].reset_index(drop=True).merge(
        windows, on=["bin_id", "locus_id"], how="left"
    )
    if merged["win_start"].isna().any():
        raise ConfigurationError("Some feats are not placed on any sequence of this layout")

    forward = merged["seq_strand"].to_numpy() != REVERSE
    local_x = merged["x"].to_numpy() - merged["x_offset"].to_numpy()
    local_xend = merged["xend"].to_numpy() - merged["x_offset"].to_numpy()
    win_start = merged["win_start"].to_numpy()
    win_end = merged["win_end"].to_numpy()

    out = feats.reset_index(drop=True).copy()
    out["start"] = _whole(np.where(forward, local_x + win_start, win_end - local_xend))
    out["end"] = _whole(np.where(forward, local_xend + win_start, win_end - local_x))
    return out


# ── Sub-features ──────────────────────────────────────────────────────────────

def map_to_parents(parents: pd.DataFrame, feat_ids: pd.Series, start, end) -> pd.DataFrame:
    """Place intervals given relative to parent feats onto the parents' sequences.

    Position 1 is the first base of the parent on its own strand, so on a
    ``-`` parent the interval is counted back from the parent's end.
    Returns ``seq_id``, ``start``, ``end``, ``reversed`` and ``found`` per row.
    """
    lookup = parents.drop_duplicates("feat_id").set_index("feat_id")
    parent = lookup.reindex(feat_ids.astype(str).to_numpy())
    found = parent["seq_id"].notna().to_numpy()
    rev = (parent["strand"] == REVERSE).to_numpy()

    start = np.asarray(start)
    end = np.asarray(end)
    p_start = parent["start"].to_numpy()
    p_end = parent["end"].to_numpy()
    placed = pd.DataFrame({
        "seq_id": parent["seq_id"].to_numpy(),
        "start": np.where(rev, p_end - end + 1, p_start + start - 1),
        "end": np.where(rev, p_end - start + 1, p_start + end - 1),
        "reversed": rev,
        "found": found,
    })
    if "bin_id" in parent.columns:
        placed["bin_id"] = parent["bin_id"].to_numpy()
    return placed


def resolve_subfeats(
    parents: pd.DataFrame,
    subfeats: pd.DataFrame,
    transform="aa2nuc",
    *,
    strict: bool = False,
    warn: bool = True,
    track_id="subfeats",
) -> tuple[pd.DataFrame, Diagnostic | None]:
    """Turn sub-feats (``feat_id`` of the parent + parent-local start/end) into feats.

    The parent id moves to ``feat_id2``; ``seq_id``, ``start``, ``end`` and
    ``strand`` are taken from the parent's placement.
    """
    what = f"subfeat track '{track_id}'"
    require_vars(subfeats, ["feat_id", "start", "end"], what)
    if "feat_id2" in subfeats.columns:
        raise ConfigurationError(f"{what} already has a feat_id2 column")

    table = subfeats.reset_index(drop=True).copy()
    start = as_positions(table["start"], "start", what)
    end = as_positions(table["end"], "end", what)
    fn = get_transform(transform)
    if fn is not None:
        start, end = fn(start, end)

    placed = map_to_parents(parents, table["feat_id"], start, end)
    found = placed["found"].to_numpy()
    diagnostic = report_unresolved(
        track_id, table.loc[~found, "feat_id"], strict, warn, target="parent feats"
    )

    table = table.loc[found].reset_index(drop=True).rename(columns={"feat_id": "feat_id2"})
    placed = placed.loc[found].reset_index(drop=True)
    table["seq_id"] = placed["seq_id"].astype(str)
    table["start"] = placed["start"].astype("int64")
    table["end"] = placed["end"].astype("int64")
    if "bin_id" in placed.columns:
        table["bin_id"] = placed["bin_id"]

    parent_strand = parents.drop_duplicates("feat_id").set_index("feat_id")["strand"]
    if "strand" in table.columns:
        own = normalize_strand(table["strand"], what)
        table["strand"] = np.where(placed["reversed"], toggle_strand(own), own)
    else:
        table["strand"] = parent_strand.reindex(table["feat_id2"].astype(str)).to_numpy()
    return table, diagnostic
