"""Contract constants.

Re-exports all constants for convenient importing:
    from reachgraph.constants import EXACT_CONFIDENCE, STORE_FORMAT_VERSION
"""

from reachgraph.constants.resolution import *  # noqa: F403
from reachgraph.constants.storage import *  # noqa: F403
