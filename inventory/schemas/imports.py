"""Import API schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ColumnMappingIn(BaseModel):
    source_column: str
    target_field: str
    is_required: bool = False


class ResolvedUser(BaseModel):
    id: str
    display_name: str = ""
    office_location: str | None = None
    email: str | None = None


class AssetImportRequest(BaseModel):
    source: str | None = None
    rows: list[dict[str, Any]] = Field(min_length=1)
    column_mappings: list[ColumnMappingIn] = []
    conflict_resolution: Literal["skip", "overwrite"] = "overwrite"
    session_id: str | None = Field(default=None, max_length=100)
    is_full_snapshot: bool | None = None
    skip_retire_asset_ids: list[uuid.UUID] = []
    allowed_reactivations: list[str] = []
    resolved_user_map: dict[str, ResolvedUser | None] = {}
    resolved_location_map: dict[str, uuid.UUID | None] = {}


class AssetRef(BaseModel):
    id: str
    asset_tag: str


class RowIssue(BaseModel):
    index: int
    error: str | None = None
    reason: str | None = None
    data: dict[str, Any] = {}


class CategorizedAsset(BaseModel):
    asset_tag: str
    category_name: str
    rule_name: str


class ImportStatisticsOut(BaseModel):
    categorized_assets: list[CategorizedAsset] = []
    unique_users: list[str] = []
    unique_locations: list[str] = []
    asset_type_breakdown: dict[str, int] = {}
    status_breakdown: dict[str, int] = {}


class ImportResultOut(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[RowIssue] = []
    skipped_items: list[RowIssue] = []
    created: list[AssetRef] = []
    updated: list[AssetRef] = []
    reactivated: list[AssetRef] = []
    retired: list[AssetRef] = []
    statistics: ImportStatisticsOut = ImportStatisticsOut()
    session_id: str | None = None
    sync_run_id: str | None = None


class PreviewRequest(BaseModel):
    source: str
    serial_numbers: list[str | None] = []
    rows: list[dict[str, Any]] = []
    column_mappings: list[ColumnMappingIn] = []


class PreviewItem(BaseModel):
    asset_id: str
    asset_tag: str
    serial_number: str | None = None


class PreviewResponse(BaseModel):
    source_system: str
    will_retire: list[PreviewItem] = []
    will_reactivate: list[PreviewItem] = []
    warnings: list[str] = []


class ResolveRequest(BaseModel):
    usernames: list[str] = []
    locations: list[str] = []
    serial_numbers: list[str] = []


class ImportRunOut(BaseModel):
    id: uuid.UUID
    source_system: str
    is_full_snapshot: bool
    initiated_by: str | None = None
    session_id: str | None = None
    status: str
    started_at: datetime
    finished_at: datetime | None = None
    stats: dict[str, Any] | None = Field(default=None, validation_alias="stats_json")
    error_message: str | None = None

    model_config = {"from_attributes": True}
