# Shared constants used across the layout modules.

SEQ_COLS = ["seq_id", "length"]
FEAT_COLS = ["seq_id", "start", "end"]
LINK_COLS = ["seq_id1", "start1", "end1", "seq_id2", "start2", "end2"]

# Default track ids for single, unnamed tables
DEFAULT_TRACK_NAMES = {
    "genes": "genes",
    "feats": "feats",
    "links": "links",
    "subfeats": "subfeats",
    "sublinks": "sublinks",
}
RESERVED_TRACK_NAMES = ("seqs",)

FORWARD = "+"
REVERSE = "-"
UNSTRANDED = "."

# Accepted spellings in input tables -> canonical strand code
STRAND_CODES = {
    "+": FORWARD, "-": REVERSE, ".": UNSTRANDED,
    "1": FORWARD, "-1": REVERSE, "0": UNSTRANDED,
    "plus": FORWARD, "minus": REVERSE,
    "forward": FORWARD, "reverse": REVERSE,
    "true": FORWARD, "false": REVERSE,
}

COLINEAR = "colinear"
INVERTED = "inverted"

MARGINAL_POLICIES = ("trim", "drop", "keep")
INFER_START_POLICIES = ("span", "zero")

DEFAULT_FOCUS_MARGIN = 1000
DEFAULT_FOCUS_MAX_DIST = 10_000

# Number of example ids listed in an aggregated diagnostic
MAX_DIAGNOSTIC_EXAMPLES = 5

# Columns appended by layout_seqs
SEQ_LAYOUT_COLS = ["bin_index", "seq_index", "x_offset", "x", "xend", "y"]
