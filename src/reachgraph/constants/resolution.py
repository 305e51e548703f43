"""Resolution tier ceilings and symbol naming conventions.

The confidence ceilings are part of the resolver contract: downstream
consumers filter and rank edges by these exact values, so they are
constants rather than configuration.
"""

# =============================================================================
# Tier Confidence Ceilings
# =============================================================================
# Exact: name, arity and import path all agree with an in-scope definition.
# Framework: a framework convention (route registration, dependency
# injection) binds the site to a handler.
# Heuristic: same-name match somewhere else in the project.

EXACT_CONFIDENCE = 1.0
FRAMEWORK_CONFIDENCE = 0.8
HEURISTIC_CONFIDENCE = 0.6

# Edges into an unresolved sink carry no binding certainty at all.
UNRESOLVED_CONFIDENCE = 0.0

# =============================================================================
# Symbol Naming
# =============================================================================
# Call and access sites outside any definition are attributed to a per-file
# pseudo function so that module-level code still shows up in the graph.

MODULE_SYMBOL = "<module>"
MODULE_SIGNATURE = "0"

# Receivers that refer to the enclosing class instance.
SELF_RECEIVERS = frozenset({"self", "cls", "this"})

# Method names that a class name aliases when it is called directly.
CONSTRUCTOR_NAMES = ("__init__", "constructor")

# Data field placeholder when a site does not name a field.
ANY_FIELD = "*"

# Table placeholder when a site does not name a table.
UNKNOWN_TABLE = "?"

# Length of truncated SHA-256 digests used for signature hashes.
SIGNATURE_HASH_LENGTH = 12
