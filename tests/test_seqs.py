import pandas as pd
import pytest

from synlayout.errors import ConfigurationError, ValidationError
from synlayout.seqs import infer_seqs, layout_seqs


def test_seqs_are_concatenated_without_gaps(seqs):
    laid = layout_seqs(seqs)
    assert laid["x_offset"].tolist() == [0, 100, 0]
    assert laid["bin_index"].tolist() == [0, 0, 1]
    assert laid["seq_index"].tolist() == [0, 1, 0]
    assert laid["y"].tolist() == [0, 0, 1]
    assert laid["strand"].tolist() == ["+", "+", "+"]

    for _, group in laid.groupby("bin_id"):
        offsets = group["x_offset"].tolist()
        widths = (group["end"] - group["start"]).tolist()
        for i in range(len(offsets) - 1):
            assert offsets[i + 1] == offsets[i] + widths[i]


def test_default_order_is_first_appearance():
    seqs = pd.DataFrame({
        "seq_id": ["s3", "s1", "s2"],
        "bin_id": ["b", "a", "b"],
        "length": [10, 20, 30],
    })
    laid = layout_seqs(seqs)
    assert laid["seq_id"].tolist() == ["s3", "s2", "s1"]
    assert laid["bin_id"].tolist() == ["b", "b", "a"]
    assert laid["x_offset"].tolist() == [0, 10, 0]


def test_bin_id_defaults_to_seq_id():
    laid = layout_seqs(pd.DataFrame({"seq_id": ["x", "y"], "length": [5, 6]}))
    assert laid["bin_id"].tolist() == ["x", "y"]
    assert laid["y"].tolist() == [0, 1]


def test_explicit_orders(seqs):
    laid = layout_seqs(seqs, bin_order=["g2", "g1"], seq_order=["C", "B", "A"])
    assert laid["seq_id"].tolist() == ["C", "B", "A"]
    assert laid["x_offset"].tolist() == [0, 0, 50]
    assert laid["bin_index"].tolist() == [0, 1, 1]


def test_bin_order_subset_drops_bins(seqs):
    laid = layout_seqs(seqs, bin_order=["g2"])
    assert laid["seq_id"].tolist() == ["C"]


def test_unknown_bin_in_order_fails(seqs):
    with pytest.raises(ValidationError, match="g9"):
        layout_seqs(seqs, bin_order=["g1", "g9"])


def test_natural_bin_order():
    seqs = pd.DataFrame({"seq_id": ["chr10", "chr2", "chr1"], "length": [1, 1, 1]})
    laid = layout_seqs(seqs, bin_order="natural")
    assert laid["bin_id"].tolist() == ["chr1", "chr2", "chr10"]


def test_spacing(seqs):
    assert layout_seqs(seqs, spacing=10)["x_offset"].tolist() == [0, 110, 0]
    # fraction of the widest bin (150)
    assert layout_seqs(seqs, spacing=0.1)["x_offset"].tolist() == [0, 115, 0]


def test_wrap_moves_overflow_to_new_row(seqs):
    laid = layout_seqs(seqs, wrap=120)
    assert laid["x_offset"].tolist() == [0, 0, 0]
    assert laid["y"].tolist() == [0, 1, 2]
    assert laid["bin_index"].tolist() == [0, 0, 1]


def test_layout_is_idempotent(seqs):
    once = layout_seqs(seqs, spacing=5)
    twice = layout_seqs(once, spacing=5)
    pd.testing.assert_frame_equal(once, twice)


def test_duplicate_seq_in_bin_fails():
    seqs = pd.DataFrame({"seq_id": ["A", "A"], "bin_id": ["g", "g"], "length": [1, 2]})
    with pytest.raises(ConfigurationError, match="Duplicate"):
        layout_seqs(seqs)


def test_missing_length_fails():
    with pytest.raises(ConfigurationError, match="length"):
        layout_seqs(pd.DataFrame({"seq_id": ["A"]}))


def test_negative_length_fails():
    with pytest.raises(ConfigurationError):
        layout_seqs(pd.DataFrame({"seq_id": ["A"], "length": [-1]}))


def test_infer_seqs_from_feats_covers_observed_span(genes):
    inferred = infer_seqs(genes)
    assert inferred["seq_id"].tolist() == ["A", "B", "C"]
    assert inferred["length"].tolist() == [30, 20, 15]
    assert inferred["start"].tolist() == [1, 10, 5]
    assert inferred["end"].tolist() == [30, 20, 15]


def test_infer_seqs_zero_start(genes):
    inferred = infer_seqs(genes, infer_start="zero")
    assert inferred["start"].tolist() == [0, 0, 0]


def test_infer_seqs_from_links(links):
    inferred = infer_seqs(links, kind="links")
    assert inferred["seq_id"].tolist() == ["A", "C"]
    assert inferred["length"].tolist() == [30, 15]


def test_infer_seqs_with_bin_column(genes):
    genes["genome"] = ["g1", "g1", "g2"]
    inferred = infer_seqs(genes, infer_bin_id="genome")
    assert inferred["bin_id"].tolist() == ["g1", "g1", "g2"]


def test_infer_seqs_bad_policy(genes):
    with pytest.raises(ConfigurationError):
        infer_seqs(genes, infer_start="middle")


def test_strand_dtype_does_not_depend_on_input(seqs):
    fresh = layout_seqs(seqs)
    given = layout_seqs(seqs.assign(strand=["+", "-", "+"]))
    assert fresh["strand"].dtype == given["strand"].dtype == object
    pd.testing.assert_frame_equal(layout_seqs(fresh), fresh)
