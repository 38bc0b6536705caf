"""
Group Roster

A group is a named set of participants. The ledger only uses rosters to
resolve display names and to find (or create) the personal group that holds
ad hoc settlements between two people.

Rosters change over time. Historical expenses keep the participant ids they
were recorded with, even after a member leaves.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from splitledger.errors import NotFoundError
from splitledger.models.timestamps import UtcDateTime


class GroupRoster(BaseModel):
    """Members of one group, id -> display name."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        min_length=1,
    )
    name: str = Field(..., min_length=1, max_length=200)
    members: dict[str, str] = Field(
        default_factory=dict,
        description="Participant id -> display name"
    )
    is_personal: bool = Field(
        default=False,
        description="Two-person group created for ad hoc settlements"
    )
    created_at: UtcDateTime = Field(default_factory=datetime.utcnow)
    updated_at: UtcDateTime = Field(default_factory=datetime.utcnow)

    def has_member(self, participant_id: str) -> bool:
        return participant_id in self.members

    def display_name(self, participant_id: str) -> Optional[str]:
        return self.members.get(participant_id)

    def with_member(self, participant_id: str, display_name: str) -> "GroupRoster":
        """Return a roster including this member (no-op if already present)."""
        if participant_id in self.members:
            return self
        members = {**self.members, participant_id: display_name}
        return self.model_copy(update={"members": members, "updated_at": datetime.utcnow()})

    def without_member(self, participant_id: str) -> "GroupRoster":
        """Return a roster without this member."""
        if participant_id not in self.members:
            raise NotFoundError(f"{participant_id} is not a member of group {self.id}")
        members = {k: v for k, v in self.members.items() if k != participant_id}
        return self.model_copy(update={"members": members, "updated_at": datetime.utcnow()})

    def is_pair(self, first: str, second: str) -> bool:
        return self.is_personal and set(self.members) == {first, second}

    @classmethod
    def personal(
        cls,
        first_id: str,
        first_name: Optional[str],
        second_id: str,
        second_name: Optional[str],
    ) -> "GroupRoster":
        """Materialize the personal group for two participants."""
        first_name = first_name or first_id
        second_name = second_name or second_id
        return cls(
            name=f"{first_name} & {second_name}",
            members={first_id: first_name, second_id: second_name},
            is_personal=True,
        )
