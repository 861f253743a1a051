from typing import Iterable, Protocol, TypeVar

from ..domain import Admin, Regular, User, Viewer


class Owned(Protocol):
    user_id: str


OwnedT = TypeVar("OwnedT", bound=Owned)


def viewer_for(user: User) -> Viewer:
    if user.is_admin:
        return Admin(user_id=user.id)
    return Regular(user_id=user.id)


def visible_records(viewer: Viewer, records: Iterable[OwnedT]) -> list[OwnedT]:
    if isinstance(viewer, Admin):
        return list(records)
    return [r for r in records if r.user_id == viewer.user_id]


def can_modify(viewer: Viewer, record: Owned) -> bool:
    return isinstance(viewer, Admin) or record.user_id == viewer.user_id
