"""Pydantic schemas for the FotoCall lead tracker."""

from .contact import (
    UNKNOWN_NAME,
    CandidateContact,
    Contact,
    ContactEdit,
    ContactStats,
    SortField,
    SortOrder,
    StatusChange,
)
from .extraction import DataUrlBatch, ExtractionOutcome

__all__ = [
    "UNKNOWN_NAME",
    "CandidateContact",
    "Contact",
    "ContactEdit",
    "ContactStats",
    "DataUrlBatch",
    "ExtractionOutcome",
    "SortField",
    "SortOrder",
    "StatusChange",
]
