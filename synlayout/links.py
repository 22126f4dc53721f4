"""Project links (pairs of sequence intervals) into layout coordinates.

Both sides go through the same window lookup and mirror rule as feats,
producing ``x, xend, y`` for side 1 and ``x2, xend2, y2`` for side 2.

``orientation`` tells the drawing layer whether a ribbon needs a twist.
Each side has a direction: +1, flipped once if the side was given as
``start > end`` (the BLAST/PAF way of writing a reverse hit) and once more if
its sequence is currently shown reversed. An optional ``strand`` column of
``-`` flips the whole link. The link is colinear when the product is +1.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd

from .base import COLINEAR, FORWARD, INVERTED, REVERSE, UNSTRANDED
from .errors import ConfigurationError, Diagnostic
from .feats import (
    clip_to_window,
    get_transform,
    is_known,
    locate,
    map_to_parents,
    mirror,
    report_unresolved,
)
from .tracks import as_positions, require_vars


@dataclass(frozen=True, eq=False)
class ProjectedLinks:
    table: pd.DataFrame
    diagnostic: Diagnostic | None = None


def _side(table: pd.DataFrame, i: str):
    start = table[f"start{i}"].to_numpy()
    end = table[f"end{i}"].to_numpy()
    bins = table[f"bin_id{i}"] if f"bin_id{i}" in table.columns else None
    return np.minimum(start, end), np.maximum(start, end), start > end, bins


def project_links(
    seqs: pd.DataFrame,
    links: pd.DataFrame,
    *,
    strict: bool = False,
    marginal: str = "keep",
    known_seqs: pd.DataFrame | None = None,
    track_id=None,
    warn: bool = True,
) -> ProjectedLinks:
    """Add x, xend, y, x2, xend2, y2, bin_id(2), locus_id(2) and orientation.

    A row is kept only if both sides resolve; unresolved sides follow the
    same strict/lenient handling as feats.
    """
    table = links.reset_index(drop=True).copy()
    if track_id is None:
        track_id = table["track_id"].iloc[0] if "track_id" in table.columns and len(table) else "links"

    lo1, hi1, rev1, bins1 = _side(table, "1")
    lo2, hi2, rev2, bins2 = _side(table, "2")
    hits1 = locate(seqs, table["seq_id1"], lo1, hi1, bins1)
    hits2 = locate(seqs, table["seq_id2"], lo2, hi2, bins2)

    rows = np.arange(len(table))
    unknown = []
    for i, hits, bins in (("1", hits1, bins1), ("2", hits2, bins2)):
        missing = np.setdiff1d(rows, hits.index.to_numpy())
        ids = table[f"seq_id{i}"].iloc[missing]
        known = is_known(ids, None if bins is None else bins.iloc[missing], known_seqs)
        unknown.append(ids[~known])
    unknown_ids = pd.concat(unknown)
    diagnostic = report_unresolved(track_id, unknown_ids, strict, warn)

    both = hits1.index.intersection(hits2.index)
    hits1, hits2 = hits1.loc[both], hits2.loc[both]
    inside = ~(hits1["outside"].to_numpy() | hits2["outside"].to_numpy())
    hits1, hits2 = hits1.loc[inside], hits2.loc[inside]

    a_lo, a_hi, keep1 = clip_to_window(
        hits1["lo"].to_numpy(), hits1["hi"].to_numpy(),
        hits1["win_start"].to_numpy(), hits1["win_end"].to_numpy(), marginal,
    )
    b_lo, b_hi, keep2 = clip_to_window(
        hits2["lo"].to_numpy(), hits2["hi"].to_numpy(),
        hits2["win_start"].to_numpy(), hits2["win_end"].to_numpy(), marginal,
    )
    keep = keep1 & keep2
    hits1, hits2 = hits1.loc[keep], hits2.loc[keep]
    a_lo, a_hi, b_lo, b_hi = a_lo[keep], a_hi[keep], b_lo[keep], b_hi[keep]

    out = table.loc[hits1.index].copy()
    side_rev1 = rev1[hits1.index.to_numpy()]
    side_rev2 = rev2[hits2.index.to_numpy()]
    # trimmed sides keep the direction they were given in
    out["start1"] = np.where(side_rev1, a_hi, a_lo)
    out["end1"] = np.where(side_rev1, a_lo, a_hi)
    out["start2"] = np.where(side_rev2, b_hi, b_lo)
    out["end2"] = np.where(side_rev2, b_lo, b_hi)

    out["x"], out["xend"] = mirror(a_lo, a_hi, hits1)
    out["y"] = hits1["y"].to_numpy()
    out["x2"], out["xend2"] = mirror(b_lo, b_hi, hits2)
    out["y2"] = hits2["y"].to_numpy()
    out["bin_id"] = hits1["bin_id"].to_numpy()
    out["bin_id2"] = hits2["bin_id"].to_numpy()
    out["locus_id"] = hits1["locus_id"].to_numpy()
    out["locus_id2"] = hits2["locus_id"].to_numpy()

    direction1 = np.where(side_rev1, -1, 1) * np.where(hits1["seq_strand"].to_numpy() == REVERSE, -1, 1)
    direction2 = np.where(side_rev2, -1, 1) * np.where(hits2["seq_strand"].to_numpy() == REVERSE, -1, 1)
    link_strand = np.ones(len(out), dtype=int)
    if "strand" in out.columns:
        link_strand = np.where(out["strand"].to_numpy() == REVERSE, -1, 1)
    out["orientation"] = np.where(direction1 * direction2 * link_strand > 0, COLINEAR, INVERTED)
    return ProjectedLinks(out.reset_index(drop=True), diagnostic)


def resolve_sublinks(
    parents: pd.DataFrame,
    sublinks: pd.DataFrame,
    transform="aa2nuc",
    *,
    strict: bool = False,
    warn: bool = True,
    track_id="sublinks",
) -> tuple[pd.DataFrame, Diagnostic | None]:
    """Turn feat-to-feat links (e.g. protein hits) into sequence links.

    Expects ``feat_id, start, end, feat_id2, start2, end2`` in parent-local
    coordinates. A side on a ``-`` parent comes out as ``start > end``, so its
    direction is carried into the link orientation.
    """
    what = f"sublink track '{track_id}'"
    require_vars(sublinks, ["feat_id", "start", "end", "feat_id2", "start2", "end2"], what)
    table = sublinks.reset_index(drop=True).copy()
    fn = get_transform(transform)

    placed = []
    for id_col, s_col, e_col in (("feat_id", "start", "end"), ("feat_id2", "start2", "end2")):
        start = as_positions(table[s_col], s_col, what)
        end = as_positions(table[e_col], e_col, what)
        lo, hi = np.minimum(start, end), np.maximum(start, end)
        if fn is not None:
            lo, hi = fn(lo, hi)
        side = map_to_parents(parents, table[id_col], lo, hi)
        # a hit written end-to-start on the parent counts as reversed too
        side["reversed"] = side["reversed"].to_numpy() ^ (start > end).to_numpy()
        placed.append(side)

    found = placed[0]["found"].to_numpy() & placed[1]["found"].to_numpy()
    missing = pd.concat([
        table.loc[~placed[0]["found"].to_numpy(), "feat_id"],
        table.loc[~placed[1]["found"].to_numpy(), "feat_id2"],
    ])
    diagnostic = report_unresolved(track_id, missing, strict, warn, target="parent feats")

    table = table.loc[found].reset_index(drop=True)
    for i, side in zip(("1", "2"), placed):
        side = side.loc[found].reset_index(drop=True)
        lo = side["start"].astype("int64").to_numpy()
        hi = side["end"].astype("int64").to_numpy()
        rev = side["reversed"].to_numpy()
        table[f"seq_id{i}"] = side["seq_id"].astype(str)
        table[f"start{i}"] = np.where(rev, hi, lo)
        table[f"end{i}"] = np.where(rev, lo, hi)
        if "bin_id" in side.columns:
            table[f"bin_id{i}"] = side["bin_id"]
    return table.drop(columns=["start", "end"]), diagnostic


def cluster_links(feats: pd.DataFrame, clusters: pd.DataFrame, bin_rank: dict) -> pd.DataFrame:
    """Link consecutive members of each cluster that sit in different bins.

    ``feats`` is a prepared feat table, ``clusters`` maps ``feat_id`` to
    ``cluster_id`` and ``bin_rank`` gives the current position of each bin,
    which decides the order in which members are chained.
    """
    require_vars(clusters, ["cluster_id", "feat_id"], "clusters")
    members = clusters[["cluster_id", "feat_id"]].astype({"feat_id": str}).merge(
        feats.drop(columns=[c for c in ("cluster_id",) if c in feats.columns]),
        on="feat_id", how="inner",
    )
    if "bin_id" not in members.columns:
        raise ConfigurationError("Cluster members need a bin_id to be ordered; lay out the feats first")
    members["_rank"] = members["bin_id"].map(bin_rank)
    members = members.dropna(subset=["_rank"]).sort_values(["cluster_id", "_rank", "start"], kind="mergesort")

    rows = []
    for cluster_id, group in members.groupby("cluster_id", sort=False):
        records = group.to_dict("records")
        for a, b in zip(records, records[1:]):
            if a["bin_id"] == b["bin_id"]:
                continue
            strands = {a["strand"], b["strand"]}
            rows.append({
                "seq_id1": a["seq_id"], "start1": a["start"], "end1": a["end"],
                "seq_id2": b["seq_id"], "start2": b["start"], "end2": b["end"],
                "bin_id1": a["bin_id"], "bin_id2": b["bin_id"],
                "strand": UNSTRANDED if UNSTRANDED in strands else (FORWARD if len(strands) == 1 else REVERSE),
                "cluster_id": cluster_id,
                "feat_id": a["feat_id"], "feat_id2": b["feat_id"],
            })
    columns = [
        "seq_id1", "start1", "end1", "seq_id2", "start2", "end2", "bin_id1", "bin_id2",
        "strand", "cluster_id", "feat_id", "feat_id2",
    ]
    return pd.DataFrame(rows, columns=columns)
