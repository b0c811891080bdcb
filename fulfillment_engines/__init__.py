"""
Module: fulfillment_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import fulfillment_kernel.domain and fulfillment_kernel.logging_config.
    MUST NOT import fulfillment_services or selectors.

Invariants enforced:
    - Purity: engines never read the clock or the database.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from fulfillment_engines.linking import EntityLinker, DEFAULT_CASCADE
    from fulfillment_engines.fulfillment import FulfillmentCalculator
"""

from fulfillment_engines.fulfillment import (
    FulfillmentAssessment,
    FulfillmentCalculator,
    FulfillmentExclusion,
    derive_status,
)
from fulfillment_engines.linking import (
    DEFAULT_CASCADE,
    EntityLinker,
    LinkDecision,
    LinkMethod,
    ProformaCandidateSource,
    ProformaMatcher,
    SamePartyMatcher,
    SharedVehicleMatcher,
    TextualReferenceMatcher,
    most_recent,
)

__all__ = [
    "DEFAULT_CASCADE",
    "EntityLinker",
    "FulfillmentAssessment",
    "FulfillmentCalculator",
    "FulfillmentExclusion",
    "LinkDecision",
    "LinkMethod",
    "ProformaCandidateSource",
    "ProformaMatcher",
    "SamePartyMatcher",
    "SharedVehicleMatcher",
    "TextualReferenceMatcher",
    "derive_status",
    "most_recent",
]
