import pandas as pd
import pytest


@pytest.fixture
def seqs():
    return pd.DataFrame({
        "seq_id": ["A", "B", "C"],
        "bin_id": ["g1", "g1", "g2"],
        "length": [100, 50, 80],
    })


@pytest.fixture
def genes():
    return pd.DataFrame({
        "seq_id": ["A", "B", "C"],
        "start": [1, 10, 5],
        "end": [30, 20, 15],
        "strand": ["+", "+", "-"],
        "name": ["gA", "gB", "gC"],
    })


@pytest.fixture
def links():
    return pd.DataFrame({
        "seq_id1": ["A"],
        "start1": [1],
        "end1": [30],
        "seq_id2": ["C"],
        "start2": [5],
        "end2": [15],
        "identity": [0.9],
    })
