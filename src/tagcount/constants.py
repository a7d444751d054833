"""
Constants for barcode tag counting.

Contains the default primer context around the tag, barcode length limits
and the naming conventions used for barcode tables and FASTQ files.
"""

# Tag amplification primer (BA primer), 5' of the tag
BA_PRIMER = "GTAATTCGTGCGCGTCAG"

# Cassette sequence from primer R2 to the arg97 primer binding site, 3' of the tag
# This is the same for all constructs
R2_TO_AMP97 = "CCGCCTACTGCGACTATAGAGATATCAACCACTTTGTACAAGAAAGCTGGGTGGTACCCATCGAAATTGAAGG"

# Only this many bases of context directly adjacent to the tag are matched
ANCHOR_LENGTH = 5

# Allowed tag length (inclusive)
MIN_BARCODE_LENGTH = 8
MAX_BARCODE_LENGTH = 16

# Row key collecting reads that don't resolve to exactly one tag
NO_MATCH = "no_match"

# Barcode table value meaning "this gene has no designed tag"
NO_TAG = "none"

# Accepted barcode table column names, first non-empty value wins
GENE_ID_COLUMNS = ("gene id", "gene_id")
BARCODE_COLUMNS = ("tag", "Barcode", "barcode")

# FASTQ files and sample names
FASTQ_SUFFIXES = (".fastq", ".fastq.gz")
SAMPLE_NAME_PATTERN = r"^(.*?\d+)\.fastq"

# Report columns
BARCODE_COL = "barcode"
GENE_COL = "gene"
