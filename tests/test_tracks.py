import pandas as pd
import pytest

from synlayout.errors import ConfigurationError
from synlayout.tracks import (
    Track,
    as_tracks,
    normalize_strand,
    prepare_feats,
    prepare_links,
    require_vars,
    resolve_track_id,
    swap_query,
    track_info,
)


def test_single_table_takes_role_name(genes):
    assert list(as_tracks(genes, "genes")) == ["genes"]
    assert list(as_tracks([genes], "genes")) == ["genes"]


def test_list_of_tables_is_numbered(genes):
    assert list(as_tracks([genes, genes], "feats")) == ["feats_1", "feats_2"]


def test_mapping_keeps_names(genes):
    assert list(as_tracks({"cds": genes, 5: genes}, "feats")) == ["cds", "5"]


def test_reserved_and_taken_names(genes):
    with pytest.raises(ConfigurationError, match="seqs"):
        as_tracks({"seqs": genes}, "feats")
    with pytest.raises(ConfigurationError, match="genes"):
        as_tracks(genes, "genes", reserved={"genes"})


def test_non_table_track_fails():
    with pytest.raises(ConfigurationError, match="DataFrame"):
        as_tracks({"x": [1, 2, 3]}, "feats")


def test_require_vars_names_missing_columns():
    with pytest.raises(ConfigurationError, match="start, end"):
        require_vars(pd.DataFrame({"seq_id": []}), ["seq_id", "start", "end"], "feats")


def test_normalize_strand_spellings():
    values = pd.Series(["+", "-", ".", 1, -1, 0, "1.0", None, "", "reverse"])
    assert normalize_strand(values).tolist() == ["+", "-", ".", "+", "-", ".", "+", ".", ".", "-"]


def test_normalize_strand_rejects_garbage():
    with pytest.raises(ConfigurationError, match="sideways"):
        normalize_strand(pd.Series(["+", "sideways"]))


def test_prepare_feats_fills_defaults():
    df = prepare_feats(pd.DataFrame({"seq_id": [1, 2], "start": [1.0, 5.0], "end": [3, 9]}), "cds")
    assert df["seq_id"].tolist() == ["1", "2"]
    assert df["start"].dtype == "int64"
    assert df["strand"].tolist() == [".", "."]
    assert df["feat_id"].tolist() == ["cds_1", "cds_2"]
    assert df["track_id"].tolist() == ["cds", "cds"]


def test_prepare_feats_rejects_reversed_interval():
    with pytest.raises(ConfigurationError, match="start > end"):
        prepare_feats(pd.DataFrame({"seq_id": ["A"], "start": [10], "end": [1]}), "feats")


def test_prepare_feats_rejects_non_numeric():
    with pytest.raises(ConfigurationError, match="start"):
        prepare_feats(pd.DataFrame({"seq_id": ["A"], "start": ["x"], "end": [1]}), "feats")


def test_prepare_links_keeps_reversed_sides(links):
    links.loc[0, ["start2", "end2"]] = [15, 5]
    df = prepare_links(links, "links")
    assert (df.loc[0, "start2"], df.loc[0, "end2"]) == (15, 5)
    assert df.loc[0, "track_id"] == "links"


def test_resolve_track_id_by_name_and_position(genes, links):
    tracks = {
        "genes": Track("genes", "feats", genes),
        "blast": Track("blast", "links", links),
        "cds": Track("cds", "feats", genes),
    }
    assert resolve_track_id(tracks, 0, "feats").track_id == "genes"
    assert resolve_track_id(tracks, 1, "feats").track_id == "cds"
    assert resolve_track_id(tracks, 0, "links").track_id == "blast"
    assert resolve_track_id(tracks, "cds", "feats").track_id == "cds"
    with pytest.raises(ConfigurationError, match="blast"):
        resolve_track_id(tracks, "nope", "links")
    with pytest.raises(ConfigurationError):
        resolve_track_id(tracks, 2, "feats")
    with pytest.raises(ConfigurationError):
        resolve_track_id(tracks, "blast", "feats")


def test_track_info(genes, links):
    tracks = {"genes": Track("genes", "feats", genes), "links": Track("links", "links", links)}
    info = track_info(tracks, n_seqs=3)
    assert info["track_id"].tolist() == ["seqs", "genes", "links"]
    assert info["n"].tolist() == [3, 3, 1]
    assert info["i"].tolist() == [0, 0, 0]


def test_swap_query_swaps_pairs_back_and_forth(links):
    swapped = swap_query(links)
    assert swapped["seq_id1"].tolist() == ["C"]
    assert swapped["seq_id2"].tolist() == ["A"]
    assert swapped["identity"].tolist() == [0.9]
    assert list(swapped.columns) == list(links.columns)
    pd.testing.assert_frame_equal(swap_query(swapped), links)


def test_swap_query_plain_pairs():
    hits = pd.DataFrame({"feat_id": ["a"], "feat_id2": ["b"], "start": [1], "start2": [7]})
    swapped = swap_query(hits)
    assert swapped.loc[0, "feat_id"] == "b"
    assert swapped.loc[0, "start2"] == 1


def test_swap_query_without_pairs_is_unchanged(genes):
    assert swap_query(genes) is genes
