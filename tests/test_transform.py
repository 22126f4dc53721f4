import warnings

import pandas as pd
import pytest

from synlayout import transform
from synlayout.errors import ConfigurationError, UnresolvedReferenceWarning, ValidationError
from synlayout.layout import layout_genomes


@pytest.fixture
def layout(seqs, genes, links):
    return layout_genomes(seqs, genes=genes, links=links)


@pytest.fixture
def genes_on_a():
    return pd.DataFrame({
        "seq_id": ["A", "A", "A", "B"],
        "start": [1, 60, 30, 10],
        "end": [30, 70, 60, 20],
        "name": ["left", "right", "middle", "other"],
    })


def test_flip_reverses_bin(layout):
    flipped = transform.flip(layout, "g1")
    seqs = flipped.get_seqs()
    assert seqs["seq_id"].tolist() == ["B", "A", "C"]
    assert seqs["strand"].tolist() == ["-", "-", "+"]
    assert seqs["x_offset"].tolist() == [0, 50, 0]

    genes = flipped.get_feats("genes").set_index("seq_id")
    assert (genes.loc["B", "x"], genes.loc["B", "xend"]) == (30, 40)
    assert genes.loc["B", "display_strand"] == "-"


def test_flip_twice_restores_layout(layout):
    twice = transform.flip(transform.flip(layout, "g1"), "g1")
    pd.testing.assert_frame_equal(twice.get_seqs(), layout.get_seqs())
    assert twice.get_feats()["x"].tolist() == layout.get_feats()["x"].tolist()
    assert twice.get_links()["orientation"].tolist() == layout.get_links()["orientation"].tolist()


def test_flip_unknown_bin_leaves_layout_alone(layout):
    before = layout.get_seqs()
    with pytest.raises(ValidationError, match="g9"):
        transform.flip(layout, "g1", "g9")
    pd.testing.assert_frame_equal(layout.get_seqs(), before)


def test_flip_seqs_keeps_position(layout):
    flipped = transform.flip_seqs(layout, "B")
    seqs = flipped.get_seqs()
    assert seqs["seq_id"].tolist() == ["A", "B", "C"]
    assert seqs["strand"].tolist() == ["+", "-", "+"]
    genes = flipped.get_feats().set_index("seq_id")
    assert (genes.loc["B", "x"], genes.loc["B", "xend"]) == (130, 140)
    with pytest.raises(ValidationError):
        transform.flip_seqs(layout, "B", bins=["g2"])


def test_flip_nicely_fixes_inverted_bin(seqs, links):
    links.loc[0, ["start2", "end2"]] = [15, 5]
    layout = layout_genomes(seqs, links=links)
    assert layout.get_links()["orientation"].tolist() == ["inverted"]
    nice = transform.flip_nicely(layout)
    assert nice.get_seqs().set_index("seq_id").loc["C", "strand"] == "-"
    assert nice.get_links()["orientation"].tolist() == ["colinear"]


def test_flip_nicely_needs_links(seqs, genes):
    with pytest.raises(ConfigurationError):
        transform.flip_nicely(layout_genomes(seqs, genes=genes))


def test_pick_reorders_bins(layout):
    picked = transform.pick(layout, "g2", "g1")
    seqs = picked.get_seqs()
    assert seqs["seq_id"].tolist() == ["C", "A", "B"]
    assert seqs["y"].tolist() == [0, 1, 1]
    assert picked.get_links().iloc[0][["y", "y2"]].tolist() == [1, 0]


def test_pick_subset_drops_feats_quietly(layout):
    with warnings.catch_warnings():
        warnings.simplefilter("error", UnresolvedReferenceWarning)
        picked = transform.pick(layout, "g2")
    assert picked.get_feats()["seq_id"].tolist() == ["C"]
    assert picked.get_links().empty
    assert picked.diagnostics == ()


def test_pick_rejects_unknown_and_repeated_bins(layout):
    with pytest.raises(ValidationError, match="g9"):
        transform.pick(layout, "g9")
    with pytest.raises(ValidationError, match="more than once"):
        transform.pick(layout, "g1", "g1")
    assert layout.get_seqs()["seq_id"].tolist() == ["A", "B", "C"]


def test_pick_seqs(layout):
    picked = transform.pick_seqs(layout, "C", "B")
    assert picked.get_seqs()["seq_id"].tolist() == ["C", "B"]
    assert picked.get_seqs()["x_offset"].tolist() == [0, 0]
    with pytest.raises(ValidationError):
        transform.pick_seqs(layout, "Q")


def test_shift_moves_whole_bin(layout):
    shifted = transform.shift(layout, "g2", 25)
    assert shifted.get_seqs()["x_offset"].tolist() == [0, 100, 25]
    assert shifted.get_feats().set_index("seq_id").loc["C", "x"] == 30
    assert shifted.get_links().iloc[0]["x2"] == 30
    # survives later transforms
    assert transform.flip(shifted, "g1").get_seqs()["x_offset"].tolist() == [0, 50, 25]


def test_focus_splits_sequence_into_windows(seqs, genes_on_a):
    layout = layout_genomes(seqs, genes=genes_on_a)
    focused = transform.focus(layout, "name in ['left', 'right']", margin=5, max_dist=0)

    seqs = focused.get_seqs()
    assert seqs["seq_id"].tolist() == ["A_1", "A_2"]
    assert seqs["parent_id"].tolist() == ["A", "A"]
    assert seqs["start"].tolist() == [0, 55]
    assert seqs["end"].tolist() == [35, 75]
    assert seqs["x_offset"].tolist() == [0, 35]

    genes = focused.get_feats().set_index("name")
    assert (genes.loc["left", "x"], genes.loc["left", "xend"]) == (1, 30)
    assert (genes.loc["right", "x"], genes.loc["right", "xend"]) == (40, 50)
    assert genes.loc["right", "locus_id"] == "A_2"
    assert "other" not in genes.index
    assert focused.params.marginal == "trim"


def test_focus_merges_nearby_regions(seqs, genes_on_a):
    layout = layout_genomes(seqs, genes=genes_on_a)
    focused = transform.focus(layout, "name in ['left', 'right']", margin=5, max_dist=30)
    seqs = focused.get_seqs()
    assert seqs["seq_id"].tolist() == ["A"]
    assert (seqs.loc[0, "start"], seqs.loc[0, "end"]) == (0, 75)


@pytest.mark.parametrize("marginal, expected", [
    ("trim", [(30, 40)]),
    ("drop", []),
    ("keep", [(30, 60)]),
])
def test_focus_marginal_policies(seqs, genes_on_a, marginal, expected):
    layout = layout_genomes(seqs, genes=genes_on_a)
    subseqs = pd.DataFrame({"seq_id": ["A"], "start": [0], "end": [40]})
    focused = transform.focus(layout, subseqs=subseqs, marginal=marginal)
    genes = focused.get_feats().set_index("name")
    middle = [tuple(genes.loc[["middle"], ["x", "xend"]].iloc[0])] if "middle" in genes.index else []
    assert middle == expected
    # entirely outside the window
    assert "right" not in genes.index


def test_focus_asymmetric_margin(seqs, genes):
    focused = transform.focus(layout_genomes(seqs, genes=genes), "seq_id == 'B'", margin=(2, 7))
    seqs = focused.get_seqs()
    assert seqs["seq_id"].tolist() == ["B"]
    assert (seqs.loc[0, "start"], seqs.loc[0, "end"]) == (8, 27)


def test_focus_margin_is_clipped_to_sequence(seqs, genes):
    focused = transform.focus(layout_genomes(seqs, genes=genes), lambda df: df["seq_id"] == "C")
    seqs = focused.get_seqs()
    assert (seqs.loc[0, "start"], seqs.loc[0, "end"]) == (0, 80)


def test_focus_on_link_track(layout):
    focused = transform.focus(layout, track="links", margin=0)
    seqs = focused.get_seqs().set_index("seq_id")
    assert seqs.index.tolist() == ["A", "C"]
    assert (seqs.loc["A", "start"], seqs.loc["A", "end"]) == (1, 30)
    assert (seqs.loc["C", "start"], seqs.loc["C", "end"]) == (5, 15)
    row = focused.get_links().iloc[0]
    assert (row["x"], row["xend"], row["x2"], row["xend2"]) == (0, 29, 0, 10)


def test_focus_rejects_bad_input(layout):
    with pytest.raises(ValidationError, match="no rows"):
        transform.focus(layout, "name == 'nothing'")
    with pytest.raises(ValidationError):
        transform.focus(layout, marginal="squash")
    with pytest.raises(ValidationError):
        transform.focus(layout, margin=-1)
    with pytest.raises(ValidationError):
        transform.focus(layout, subseqs=pd.DataFrame({"seq_id": ["Q"], "start": [0], "end": [1]}))


def test_transforms_after_focus_keep_windows(seqs, genes_on_a):
    focused = transform.focus(
        layout_genomes(seqs, genes=genes_on_a), "name in ['left', 'right']", margin=5, max_dist=0
    )
    flipped = transform.flip(focused, "g1")
    seqs = flipped.get_seqs()
    assert seqs["seq_id"].tolist() == ["A_2", "A_1"]
    assert seqs["x_offset"].tolist() == [0, 20]
    genes = flipped.get_feats().set_index("name")
    # right: 60-70 on window 55-75 shown reversed at offset 0
    assert (genes.loc["right", "x"], genes.loc["right", "xend"]) == (5, 15)


def test_pick_inverse_restores_layout(layout):
    restored = transform.pick(transform.pick(layout, "g2", "g1"), "g1", "g2")
    pd.testing.assert_frame_equal(restored.get_seqs(), layout.get_seqs())
    pd.testing.assert_frame_equal(restored.get_feats(), layout.get_feats())
    pd.testing.assert_frame_equal(restored.get_links(), layout.get_links())


def test_trim_drops_feats_beyond_a_full_window(seqs):
    genes = pd.DataFrame({"seq_id": ["C", "C"], "start": [5, 150], "end": [15, 160]})
    layout = layout_genomes(seqs, genes=genes)
    focused = transform.focus(layout, "seq_id == 'C' and start == 5", margin=1000, marginal="trim")
    seqs = focused.get_seqs()
    assert (seqs.loc[0, "start"], seqs.loc[0, "end"]) == (0, 80)
    feats = focused.get_feats()
    assert feats["start"].tolist() == [5]
    assert (feats["x"] <= feats["xend"]).all()


def test_refocus_keeps_strand_of_each_window(seqs, genes_on_a):
    query = "name in ['left', 'right']"
    focused = transform.focus(layout_genomes(seqs, genes=genes_on_a), query, margin=5, max_dist=0)
    flipped = transform.flip_seqs(focused, "A_2")
    refocused = transform.focus(flipped, query, margin=5, max_dist=0)
    seqs = refocused.get_seqs()
    assert seqs["seq_id"].tolist() == ["A_1", "A_2"]
    assert seqs["strand"].tolist() == ["+", "-"]
