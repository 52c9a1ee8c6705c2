"""Inventory models - re-exports all models and Base.metadata."""

from .base import Base, UUIDMixin, TimestampMixin
from .location import Location
from .asset import Asset
from .source_link import ExternalSourceLink
from .custom_field import CustomField, CustomFieldValue
from .workload import WorkloadCategory, WorkloadCategoryRule, AssetWorkloadCategory
from .activity import Activity
from .sync_run import ImportSyncRun

__all__ = [
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "Location",
    "Asset",
    "ExternalSourceLink",
    "CustomField",
    "CustomFieldValue",
    "WorkloadCategory",
    "WorkloadCategoryRule",
    "AssetWorkloadCategory",
    "Activity",
    "ImportSyncRun",
]
