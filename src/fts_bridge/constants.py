"""Fixed constants exposed at the boundary.

Numbering follows the Xapian C++ API so that values recorded elsewhere
(configuration files, serialised queries) stay meaningful.
"""

from __future__ import annotations


# Database open actions (low byte of the open flags)
DB_CREATE_OR_OPEN = 1
DB_CREATE = 2
DB_CREATE_OR_OVERWRITE = 3
DB_OPEN = 4
DB_ACTION_MASK = 0xFF

# Backend selectors, bitwise-combined with an open action
DB_BACKEND_AUTO = 0x000
DB_BACKEND_SQLITE = 0x100
DB_BACKEND_INMEMORY = 0x400
DB_BACKEND_MASK = 0xF00

# Query operators
OP_AND = 0
OP_OR = 1
OP_AND_NOT = 2
OP_XOR = 3
OP_AND_MAYBE = 4
OP_FILTER = 5
OP_NEAR = 6
OP_PHRASE = 7
OP_VALUE_RANGE = 8
OP_SCALE_WEIGHT = 9
OP_ELITE_SET = 10
OP_VALUE_GE = 11
OP_VALUE_LE = 12
OP_SYNONYM = 13
OP_MAX = 14
OP_WILDCARD = 15
OP_INVALID = 99

# Leaf query types reported by Query.get_type()
LEAF_TERM = 100
LEAF_POSTING_SOURCE = 101
LEAF_MATCH_ALL = 102
LEAF_MATCH_NOTHING = 103

OP_NAMES = {
    OP_AND: "AND",
    OP_OR: "OR",
    OP_AND_NOT: "AND_NOT",
    OP_XOR: "XOR",
    OP_AND_MAYBE: "AND_MAYBE",
    OP_FILTER: "FILTER",
    OP_NEAR: "NEAR",
    OP_PHRASE: "PHRASE",
    OP_VALUE_RANGE: "VALUE_RANGE",
    OP_SCALE_WEIGHT: "SCALE_WEIGHT",
    OP_ELITE_SET: "ELITE_SET",
    OP_VALUE_GE: "VALUE_GE",
    OP_VALUE_LE: "VALUE_LE",
    OP_SYNONYM: "SYNONYM",
    OP_MAX: "MAX",
    OP_WILDCARD: "WILDCARD",
    OP_INVALID: "INVALID",
}

# QueryParser feature flags
FLAG_BOOLEAN = 1
FLAG_PHRASE = 2
FLAG_LOVEHATE = 4
FLAG_BOOLEAN_ANY_CASE = 8
FLAG_WILDCARD = 16
FLAG_PURE_NOT = 32
FLAG_PARTIAL = 64
FLAG_SPELLING_CORRECTION = 128
FLAG_SYNONYM = 256
FLAG_AUTO_SYNONYMS = 512
FLAG_AUTO_MULTIWORD_SYNONYMS = 1024
FLAG_CJK_NGRAM = 2048
FLAG_ACCUMULATE = 65536
FLAG_NO_POSITIONS = 0x20000
FLAG_DEFAULT = FLAG_PHRASE | FLAG_BOOLEAN | FLAG_LOVEHATE

# Stemming strategies shared by QueryParser and TermGenerator
STEM_NONE = 0
STEM_SOME = 1
STEM_ALL = 2
STEM_ALL_Z = 3
STEM_SOME_FULL_POS = 4

# TermGenerator stop-word strategies
STOP_NONE = 0
STOP_ALL = 1
STOP_STEMMED = 2

# TermGenerator flags
TG_FLAG_SPELLING = 128
TG_FLAG_CJK_NGRAM = 2048

# Range processor flags
RP_SUFFIX = 1
RP_REPEATED = 2
RP_DATE_PREFER_MDY = 4

# MSet.snippet flags
SNIPPET_BACKGROUND_MODEL = 1
SNIPPET_EXHAUSTIVE = 2
SNIPPET_EMPTY_WITHOUT_MATCH = 4
SNIPPET_CJK_NGRAM = 2048

# Enquire docid ordering
DESCENDING = 0
ASCENDING = 1
DONT_CARE = 2

# Wildcard expansion limit behaviour
WILDCARD_LIMIT_ERROR = 0
WILDCARD_LIMIT_FIRST = 1
WILDCARD_LIMIT_MOST_FREQUENT = 2

BAD_VALUENO = 0xFFFFFFFF
MAX_TERM_LENGTH = 245
