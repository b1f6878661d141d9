"""Pydantic models for mapping payloads exchanged on the command line and in batch files."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from idmap.domain.errors import DuplicateMappingError, MappingValidationError
from idmap.domain.families import IdPair, RowMetadata, build_mapping, family_for
from idmap.domain.model import (
    CaseChildMapping,
    EntityKind,
    Mapping,
    OwnerMappingSummary,
    Page,
    Provenance,
)

LABEL_MAX_LENGTH: Final[int] = 20


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def _parse_provenance(value: object) -> object:
    if isinstance(value, str):
        return value.strip().lower()
    return value


class IdMapBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class MappingPayload(IdMapBaseModel):
    """A single mapping in its external shape."""

    kind: EntityKind
    legacy_key: str = Field(alias="legacyKey")
    modern_id: str = Field(alias="modernId", min_length=1)
    owner_key: str | None = Field(default=None, alias="ownerKey")
    parent_modern_id: str | None = Field(default=None, alias="parentModernId")
    label: str | None = Field(default=None, max_length=LABEL_MAX_LENGTH)
    mapping_type: Provenance = Field(default=Provenance.MODERN_CREATED, alias="mappingType")
    when_created: datetime | None = Field(default=None, alias="whenCreated")

    _normalize_owner = field_validator("owner_key", "parent_modern_id", "label", mode="before")(
        _blank_to_none
    )
    _normalize_mapping_type = field_validator("mapping_type", mode="before")(_parse_provenance)

    @field_validator("legacy_key", mode="before")
    @classmethod
    def _stringify_legacy_key(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    def to_domain(self) -> Mapping:
        family = family_for(self.kind)
        pair = IdPair(family.parse_local_key(self.legacy_key), self.modern_id)
        metadata = RowMetadata(
            owner_key=self.owner_key,
            parent_remote_id=self.parent_modern_id,
            batch_label=self.label,
            provenance=self.mapping_type,
            created_at=self.when_created,
        )
        return build_mapping(self.kind, pair, metadata)

    @classmethod
    def from_domain(cls, mapping: Mapping) -> MappingPayload:
        parent = mapping.parent_remote_id if isinstance(mapping, CaseChildMapping) else None
        return cls(
            kind=mapping.kind,
            legacy_key=str(mapping.local_key),
            modern_id=mapping.remote_key,
            owner_key=mapping.owner_key,
            parent_modern_id=parent,
            label=mapping.batch_label,
            mapping_type=mapping.provenance,
            when_created=mapping.created_at,
        )


class IdPairPayload(IdMapBaseModel):
    legacy_key: str = Field(alias="legacyKey")
    modern_id: str = Field(alias="modernId", min_length=1)

    @field_validator("legacy_key", mode="before")
    @classmethod
    def _stringify_legacy_key(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value


class OwnerMappingsPayload(IdMapBaseModel):
    """One line of a migration batch file: identifier pairs sharing owner and label."""

    kind: EntityKind
    owner_key: str | None = Field(default=None, alias="ownerKey")
    parent_modern_id: str | None = Field(default=None, alias="parentModernId")
    label: str | None = Field(default=None, max_length=LABEL_MAX_LENGTH)
    mapping_type: Provenance = Field(default=Provenance.MIGRATED, alias="mappingType")
    mappings: list[IdPairPayload] = Field(default_factory=list[IdPairPayload])

    _normalize_optional = field_validator(
        "owner_key", "parent_modern_id", "label", mode="before"
    )(_blank_to_none)
    _normalize_mapping_type = field_validator("mapping_type", mode="before")(_parse_provenance)

    def id_pairs(self) -> list[IdPair]:
        family = family_for(self.kind)
        return [
            IdPair(family.parse_local_key(pair.legacy_key), pair.modern_id)
            for pair in self.mappings
        ]

    def to_domain(self) -> list[Mapping]:
        metadata = RowMetadata(
            owner_key=self.owner_key,
            parent_remote_id=self.parent_modern_id,
            batch_label=self.label,
            provenance=self.mapping_type,
        )
        return [build_mapping(self.kind, pair, metadata) for pair in self.id_pairs()]


class DuplicateErrorPayload(IdMapBaseModel):
    """Body reported for a genuine duplicate: both sides of the conflict."""

    message: str
    duplicate: MappingPayload
    existing: MappingPayload

    @classmethod
    def from_error(cls, error: DuplicateMappingError) -> DuplicateErrorPayload:
        return cls(
            message=str(error),
            duplicate=MappingPayload.from_domain(error.incoming),
            existing=MappingPayload.from_domain(error.existing),
        )


class OwnerSummaryPayload(IdMapBaseModel):
    owner_key: str = Field(alias="ownerKey")
    mapping_count: int = Field(alias="mappingCount")
    latest_created_at: datetime | None = Field(default=None, alias="latestCreatedAt")

    @classmethod
    def from_domain(cls, summary: OwnerMappingSummary) -> OwnerSummaryPayload:
        return cls(
            owner_key=summary.owner_key,
            mapping_count=summary.mapping_count,
            latest_created_at=summary.latest_created_at,
        )


class PagePayload(IdMapBaseModel):
    content: list[MappingPayload] | list[OwnerSummaryPayload]
    number: int
    size: int
    total_elements: int = Field(alias="totalElements")
    total_pages: int = Field(alias="totalPages")
    last: bool

    @classmethod
    def from_page(cls, page: Page[Any]) -> PagePayload:
        content: list[MappingPayload] | list[OwnerSummaryPayload]
        if page.items and isinstance(page.items[0], OwnerMappingSummary):
            content = [OwnerSummaryPayload.from_domain(item) for item in page.items]
        else:
            content = [MappingPayload.from_domain(item) for item in page.items]
        return cls(
            content=content,
            number=page.request.page_number,
            size=page.request.limit,
            total_elements=page.total,
            total_pages=page.total_pages,
            last=page.is_last,
        )


def parse_owner_mappings_line(line: str) -> OwnerMappingsPayload:
    """Parse one JSON line of a batch file, reporting problems as validation errors."""

    try:
        return OwnerMappingsPayload.model_validate_json(line)
    except ValidationError as exc:
        raise MappingValidationError(f"Invalid batch line: {exc}") from exc
