"""
Archival State

Soft delete is modelled as a tagged state instead of loose flags:
a record is either Active or Archived, and Archived carries its provenance.
Consumers branch on `kind`, so the two cases are never mixed up.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from splitledger.models.timestamps import UtcDateTime, to_naive_utc


class ActiveState(BaseModel):
    """Record is live and counts towards balances."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["active"] = "active"


class ArchivedState(BaseModel):
    """
    Record has been deleted from the active set and lives in history.

    deleted_from_group is set when the record belonged to a group at the
    time of deletion (either the group itself or the record was deleted).
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["archived"] = "archived"
    deleted_at: UtcDateTime = Field(
        ...,
        description="When the record left the active set"
    )
    deleted_from_group: Optional[str] = Field(
        default=None,
        description="Group the record belonged to when it was archived"
    )
    deleted_group_name: Optional[str] = Field(
        default=None,
        description="Group display name at the time of archival"
    )


ArchivalState = Annotated[
    Union[ActiveState, ArchivedState],
    Field(discriminator="kind"),
]


class ArchivableRecord(BaseModel):
    """Mixin for records that can be soft-deleted."""

    archival: ArchivalState = Field(
        default_factory=ActiveState,
        description="Active or archived (with provenance)"
    )

    @property
    def is_deleted(self) -> bool:
        return isinstance(self.archival, ArchivedState)

    @property
    def deleted_at(self) -> Optional[datetime]:
        if isinstance(self.archival, ArchivedState):
            return self.archival.deleted_at
        return None

    @property
    def deleted_from_group(self) -> Optional[str]:
        if isinstance(self.archival, ArchivedState):
            return self.archival.deleted_from_group
        return None

    def archived(
        self,
        at: datetime,
        group_id: Optional[str] = None,
        group_name: Optional[str] = None,
    ):
        """
        Return an archived copy of this record.

        Already-archived records are returned unchanged so archival can be
        replayed safely.
        """
        if self.is_deleted:
            return self
        at = to_naive_utc(at)
        state = ArchivedState(
            deleted_at=at,
            deleted_from_group=group_id,
            deleted_group_name=group_name,
        )
        return self.model_copy(update={"archival": state, "updated_at": at})
