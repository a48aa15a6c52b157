# leadsight/domain/errors.py
"""
Typed errors for the lead validation pipeline.

InvalidInput        caller error, never retried
TransportFailure    listings / imagery / vision network or auth failure
MalformedAnalysis   a vision provider answered but broke the category schema
NoPropertiesFound   nothing to validate for a batch
"""
from __future__ import annotations


class LeadSightError(Exception):
    """Base class for pipeline failures."""


class InvalidInput(LeadSightError, ValueError):
    """Bad coordinates, lead category, or location."""


class InvalidRequestSize(InvalidInput):
    """requestedLeads outside the fixed enumeration."""


class TransportFailure(LeadSightError):
    """Upstream call failed (network, auth, timeout, unexpected envelope)."""


class ListingsUnavailable(TransportFailure):
    """The listings provider could not be reached or rejected the call."""


class ImageRetrievalError(TransportFailure):
    """Satellite imagery could not be resolved for a coordinate."""


class ProviderError(TransportFailure):
    """A single vision provider failed; the next provider may be tried."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class VisionUnavailable(TransportFailure):
    """Every vision provider in the chain failed."""


class MalformedAnalysis(LeadSightError):
    """Provider response did not contain a valid analysis object."""


class NoPropertiesFound(LeadSightError):
    """No candidates were found for a search, or a property id is unknown."""
