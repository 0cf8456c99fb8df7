"""
Join profiles: which fields of a related record get copied into a parent.

A Profile names the collection a foreign key points into and the set of fields
to include. `fields=None` means the whole record. The record `id` is always
included.

Type tags (`post`, `tick`, `dataset`, ...) map to plural collection names, so
an event with `action_type="tick"` joins its action from `ticks`.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Profile:
    """Field selection for a join into `collection`."""
    collection: str
    fields: Optional[frozenset[str]] = None

    def extend(self, *fields: str) -> "Profile":
        """Return a copy of this profile with extra fields included."""
        if self.fields is None:
            return self
        return Profile(self.collection, self.fields | frozenset(fields))

    def project(self, record: dict) -> dict:
        """Copy the selected fields out of a record."""
        if self.fields is None:
            return dict(record)
        return {
            key: value for key, value in record.items()
            if key == "id" or key in self.fields
        }


def collection_for(type_tag: str) -> str:
    """Collection holding records of a type tag."""
    return f"{type_tag}s"


# Public identity fields of a member
MEMBER = Profile("members", frozenset({"username", "display_name", "gravatar", "avatar"}))

# Member fields needed to deliver a notification
RECIPIENT = MEMBER.extend("primary_email", "config")

CRAG = Profile("crags", frozenset({"name", "key", "country", "location"}))
ASCENT = Profile("ascents", frozenset({"name", "key", "grade", "type", "crag_id"}))
DATASET = Profile("datasets", frozenset({"title", "author_id", "public"}))

PROFILES: dict[str, Profile] = {
    "member": MEMBER,
    "crag": CRAG,
    "ascent": ASCENT,
    "dataset": DATASET,
}


def profile_for(type_tag: str) -> Profile:
    """Profile used when joining a record of the given type tag."""
    return PROFILES.get(type_tag) or Profile(collection_for(type_tag))
