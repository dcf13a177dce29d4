"""Hierarchy module for the ads platform API."""

from collectors.hierarchy.client import HierarchyClient
from collectors.hierarchy.schemas import (
    AdGroupDict,
    CampaignDict,
    EntityStatusLiteral,
    FetchModeLiteral,
    LineItemDict,
    PolicyInfoDict,
)

__all__ = [
    "HierarchyClient",
    "CampaignDict",
    "AdGroupDict",
    "LineItemDict",
    "PolicyInfoDict",
    "EntityStatusLiteral",
    "FetchModeLiteral",
]
