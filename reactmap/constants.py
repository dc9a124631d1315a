# Copyright 2019-2025, Relay Therapeutics
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from enum import Enum

# Circular fingerprint used to key the result cache
CACHE_FP_RADIUS = 6
CACHE_FP_SIZE = 1024

# MCS strategy selection: the exhaustive strategy is only used when the pair is connected,
# more than EXPECTED_MATCH_THRESHOLD atom tags are shared and both graphs have more than
# MIN_BOND_COUNT bonds.
EXPECTED_MATCH_THRESHOLD = 3
MIN_BOND_COUNT = 2

# rdFMCS timeouts, in seconds
DEFAULT_MCS_TIMEOUT = 60
APPROXIMATE_MCS_TIMEOUT = 2

# Upper bound on the number of candidate embeddings/MCS placements ranked by the chem filters
MAX_CANDIDATE_MATCHES = 64

# Upper bound on the number of raw subgraph embeddings inspected per substructure attempt
MAX_EMBEDDING_VISITS = 10_000


class Theory(Enum):
    """Selects the ring-matching configuration and isomorphism strategy branch"""

    RINGS = "rings"
    MIN = "min"
    DEFAULT = "default"


class Algorithm(Enum):
    DEFAULT = "default"  # exhaustive MCS
    VF_LIB_MCS = "vf_lib_mcs"  # faster, approximate MCS


DEFAULT_MATCHING_KWARGS = dict(
    theory=Theory.DEFAULT,
    bond_matcher=False,
    ring_matcher=True,
    atom_matcher=True,
)
