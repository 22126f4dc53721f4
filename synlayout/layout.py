"""The layout state: laid out sequences plus projected feat and link tracks.

A :class:`Layout` is a value. Adding tracks or transforming it (see
:mod:`synlayout.transform`) returns a new ``Layout`` and leaves the old one
untouched; a call that fails raises before anything new is built. Tables
handed out by the accessors are copies, so they do not follow later
transforms.

Typical use::

    layout = layout_genomes(seqs, genes=genes, links=links)
    layout = transform.flip(layout, "genome_b")
    layout.get_feats("genes")
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType

import pandas as pd

from .base import DEFAULT_TRACK_NAMES
from .errors import ConfigurationError, Diagnostic
from .feats import project_feats, resolve_subfeats
from .links import cluster_links, project_links, resolve_sublinks
from .seqs import infer_seqs, layout_seqs, prepare_seqs
from .tracks import (
    Track,
    as_tracks,
    prepare_feats,
    prepare_links,
    resolve_track_id,
    track_info,
)


@dataclass(frozen=True)
class LayoutParams:
    spacing: float = 0
    wrap: float | None = None
    strict: bool = False
    marginal: str = "keep"


@dataclass(frozen=True, eq=False)
class Layout:
    seqs: pd.DataFrame
    catalog: pd.DataFrame
    tracks: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    projected: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    diagnostics: tuple[Diagnostic, ...] = ()
    params: LayoutParams = LayoutParams()

    # ── accessors ──────────────────────────────────────────────────────────

    def get_seqs(self) -> pd.DataFrame:
        return self.seqs.copy()

    def _get(self, track_ids, track_type: str) -> pd.DataFrame:
        if not isinstance(track_ids, (list, tuple)):
            track = resolve_track_id(self.tracks, track_ids, track_type)
            return self.projected[track.track_id].copy()
        # several tracks come back as one table told apart by track_id
        tables = [
            self.projected[resolve_track_id(self.tracks, t, track_type).track_id]
            for t in track_ids
        ]
        if not tables:
            raise ConfigurationError(f"No {track_type} tracks requested")
        return pd.concat(tables, ignore_index=True)

    def get_feats(self, track_id=0) -> pd.DataFrame:
        """Projected feats of one track, or of a list of tracks stacked together."""
        return self._get(track_id, "feats")

    def get_links(self, track_id=0) -> pd.DataFrame:
        return self._get(track_id, "links")

    def pull_seqs(self) -> pd.DataFrame:
        """Seqs reduced to the columns needed to draw and label them."""
        cols = ["seq_id", "bin_id", "length", "start", "end", "strand",
                "bin_index", "seq_index", "x_offset", "x", "xend", "y"]
        return self.seqs[cols].copy()

    def track_info(self) -> pd.DataFrame:
        info = track_info(self.tracks, n_seqs=len(self.seqs))
        shown = {name: len(table) for name, table in self.projected.items()}
        shown["seqs"] = len(self.seqs)
        info["n_shown"] = info["track_id"].map(shown)
        return info

    def feat_track_ids(self) -> list[str]:
        return [t.track_id for t in self.tracks.values() if t.track_type == "feats"]

    def link_track_ids(self) -> list[str]:
        return [t.track_id for t in self.tracks.values() if t.track_type == "links"]

    # ── state updates ──────────────────────────────────────────────────────

    def _project(self, track: Track, seqs: pd.DataFrame, params: LayoutParams, warn: bool):
        project = project_feats if track.track_type == "feats" else project_links
        return project(
            seqs, track.table,
            strict=params.strict,
            marginal=params.marginal,
            known_seqs=self.catalog,
            track_id=track.track_id,
            warn=warn,
        )

    def with_seqs(self, seqs: pd.DataFrame, **params) -> "Layout":
        """Re-lay ``seqs`` (keeping their row order) and re-project every track."""
        new_params = replace(self.params, **params)
        laid = layout_seqs(seqs, spacing=new_params.spacing, wrap=new_params.wrap)
        projected, diagnostics = {}, []
        for track in self.tracks.values():
            result = self._project(track, laid, new_params, warn=False)
            projected[track.track_id] = result.table
            diagnostics.extend(d for d in (track.diagnostic, result.diagnostic) if d is not None)
        return replace(
            self,
            seqs=laid,
            projected=MappingProxyType(projected),
            diagnostics=tuple(diagnostics),
            params=new_params,
        )

    def _with_tracks(self, new_tracks: list[Track], replaced: bool = False) -> "Layout":
        """Project and register ``new_tracks``; ``replaced`` swaps in new versions of existing ones."""
        if not replaced:
            clash = [t.track_id for t in new_tracks if t.track_id in self.tracks]
            if clash:
                raise ConfigurationError(f"Track name(s) already in use: {', '.join(clash)}")
        tracks = dict(self.tracks)
        projected = dict(self.projected)
        diagnostics = [d for d in self.diagnostics
                       if d.track_id not in {t.track_id for t in new_tracks}]
        for track in new_tracks:
            result = self._project(track, self.seqs, self.params, warn=not replaced)
            tracks[track.track_id] = track
            projected[track.track_id] = result.table
            diagnostics.extend(d for d in (track.diagnostic, result.diagnostic) if d is not None)
        return replace(
            self,
            tracks=MappingProxyType(tracks),
            projected=MappingProxyType(projected),
            diagnostics=tuple(diagnostics),
        )

    def _default_parent(self, track_id):
        if track_id is None:
            track_id = "genes" if "genes" in self.tracks else 0
        return resolve_track_id(self.tracks, track_id, "feats")

    def add_feats(self, feats, track_id: str = DEFAULT_TRACK_NAMES["feats"]) -> "Layout":
        """Add one or more feat tracks; seqs are not changed."""
        named = as_tracks(feats, track_id, reserved=self.tracks)
        return self._with_tracks([
            Track(name, "feats", prepare_feats(table, name)) for name, table in named.items()
        ])

    def add_genes(self, genes, track_id: str = DEFAULT_TRACK_NAMES["genes"]) -> "Layout":
        return self.add_feats(genes, track_id=track_id)

    def add_links(self, links, track_id: str = DEFAULT_TRACK_NAMES["links"]) -> "Layout":
        """Add one or more link tracks; seqs are not changed."""
        named = as_tracks(links, track_id, reserved=self.tracks)
        return self._with_tracks([
            Track(name, "links", prepare_links(table, name)) for name, table in named.items()
        ])

    def add_subfeats(self, subfeats, parent_track=None, transform="aa2nuc",
                     track_id: str = DEFAULT_TRACK_NAMES["subfeats"]) -> "Layout":
        """Add feats positioned relative to the feats of ``parent_track``.

        ``transform`` converts the sub-feat coordinates first ("aa2nuc" for
        protein domains on genes, "none", or any ``(start, end)`` function).
        """
        parent = self._default_parent(parent_track)
        named = as_tracks(subfeats, track_id, reserved=self.tracks)
        tracks = []
        for name, table in named.items():
            resolved, diagnostic = resolve_subfeats(
                parent.table, table, transform,
                strict=self.params.strict, track_id=name,
            )
            tracks.append(Track(
                name, "feats", prepare_feats(resolved, name),
                source="subfeats", diagnostic=diagnostic,
            ))
        return self._with_tracks(tracks)

    def add_sublinks(self, sublinks, parent_track=None, transform="aa2nuc",
                     track_id: str = DEFAULT_TRACK_NAMES["sublinks"]) -> "Layout":
        """Add links between feats of ``parent_track`` (e.g. protein-protein hits)."""
        parent = self._default_parent(parent_track)
        named = as_tracks(sublinks, track_id, reserved=self.tracks)
        tracks = []
        for name, table in named.items():
            resolved, diagnostic = resolve_sublinks(
                parent.table, table, transform,
                strict=self.params.strict, track_id=name,
            )
            tracks.append(Track(
                name, "links", prepare_links(resolved, name),
                source="sublinks", diagnostic=diagnostic,
            ))
        return self._with_tracks(tracks)

    def add_clusters(self, clusters, parent_track=None, track_id: str = "clusters") -> "Layout":
        """Attach ``cluster_id`` to the feats of ``parent_track`` and link cluster members.

        Members of a cluster are chained in the current bin order; a link
        track named ``track_id`` connects each member to the next one found
        in another bin.
        """
        parent = self._default_parent(parent_track)
        if not isinstance(clusters, pd.DataFrame):
            raise ConfigurationError("clusters must be a pandas DataFrame")
        if track_id in self.tracks or track_id == "seqs":
            raise ConfigurationError(f"Track name already in use: {track_id}")

        table = clusters.copy()
        if "cluster_id" not in table.columns or "feat_id" not in table.columns:
            raise ConfigurationError("clusters need cluster_id and feat_id columns")
        table["feat_id"] = table["feat_id"].astype(str)
        table = table.drop_duplicates("feat_id")
        extra = [c for c in table.columns if c != "feat_id"]
        parent_table = parent.table.drop(columns=[c for c in extra if c in parent.table.columns])
        updated = Track(
            parent.track_id, "feats",
            parent_table.merge(table, on="feat_id", how="left"),
            source=parent.source,
            diagnostic=parent.diagnostic,
        )

        bin_rank = dict(zip(self.seqs["bin_id"], self.seqs["bin_index"]))
        members = self.projected[parent.track_id]
        links = cluster_links(members, table, bin_rank)
        link_track = Track(track_id, "links", prepare_links(links, track_id), source="clusters")
        with_clusters = self._with_tracks([updated], replaced=True)
        return with_clusters._with_tracks([link_track])


def layout_genomes(
    seqs: pd.DataFrame | None = None,
    genes=None,
    feats=None,
    links=None,
    *,
    bin_order=None,
    seq_order=None,
    spacing: float = 0,
    wrap=None,
    strict: bool = False,
    infer_bin_id: str = "seq_id",
    infer_start: str = "span",
) -> Layout:
    """Lay out sequences and project every feat and link track onto them.

    ``genes``, ``feats`` and ``links`` each take a table, a list of tables or
    a mapping of track name -> table. Without ``seqs``, pseudo-sequences are
    inferred from the first feat track, or else from the first link track.
    """
    gene_tables = as_tracks(genes, DEFAULT_TRACK_NAMES["genes"])
    feat_tables = as_tracks(feats, DEFAULT_TRACK_NAMES["feats"], reserved=gene_tables)
    feat_tables = {**gene_tables, **feat_tables}
    link_tables = as_tracks(links, DEFAULT_TRACK_NAMES["links"], reserved=feat_tables)

    tracks = {name: Track(name, "feats", prepare_feats(table, name))
              for name, table in feat_tables.items()}
    tracks.update({name: Track(name, "links", prepare_links(table, name))
                   for name, table in link_tables.items()})

    if seqs is None:
        if feat_tables:
            print("No seqs provided, inferring seqs from feats")
            first = next(t for t in tracks.values() if t.track_type == "feats")
            seqs = infer_seqs(first.table, "feats", infer_bin_id, infer_start)
        elif link_tables:
            print("No seqs or feats provided, inferring seqs from links")
            first = next(t for t in tracks.values() if t.track_type == "links")
            seqs = infer_seqs(first.table, "links", infer_bin_id, infer_start)
        else:
            raise ConfigurationError("Need at least one of: seqs, genes, feats or links")
    elif "bin_id" not in seqs.columns:
        if infer_bin_id not in seqs.columns:
            raise ConfigurationError(f"Cannot infer bin_id: no column '{infer_bin_id}' in seqs")
        seqs = seqs.assign(bin_id=seqs[infer_bin_id])

    params = LayoutParams(spacing=spacing, wrap=wrap, strict=strict)
    laid = layout_seqs(seqs, bin_order=bin_order, seq_order=seq_order,
                       spacing=spacing, wrap=wrap)
    layout = Layout(
        seqs=laid,
        catalog=prepare_seqs(seqs)[["bin_id", "parent_id"]],
        params=params,
    )
    return layout._with_tracks(list(tracks.values()))
