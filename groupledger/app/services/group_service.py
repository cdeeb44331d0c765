"""
services/group_service.py — Group and membership business logic.

Visibility:
  A group is visible only to its current members and only while active.
  Missing, inactive, and not-a-member all raise GROUP_NOT_FOUND (404).

Authorization rules:
  - Update / soft-delete a group: admin only (FORBIDDEN, 403)
  - Add a member:                 admin only
  - Remove a member:              admin removes anyone; a member removes self

Membership invariants (enforced in remove_member):
  - A group keeps at least one member (LAST_MEMBER, 422).
  - A group with members always has at least one admin: removing the last
    admin promotes the earliest-joined remaining member.

Membership changes lock the group row, the same lock the ledger writer
takes, so a member can never be removed halfway through an expense write.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility (transaction.atomic) — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.group import Group
from groupledger.app.models.membership import MemberRole, Membership
from groupledger.app.models.user import User
from groupledger.app.services.split_service import money

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _group_not_found(group_id: int) -> AppError:
    return AppError(
        ErrorCode.GROUP_NOT_FOUND,
        f"Group {group_id} does not exist.",
        404,
    )


def _get_active_group_or_404(
        group_id: int,
        session: Session,
        lock: bool = False,
) -> Group:
    """
    Returns the active Group or raises GROUP_NOT_FOUND (404).

    lock=True issues SELECT ... FOR UPDATE on the group row. Writers to the
    same group serialize on it; writers to other groups are unaffected.
    """
    stmt = select(Group).where(Group.id == group_id, Group.is_active.is_(True))
    if lock:
        stmt = stmt.with_for_update()
    group = session.execute(stmt).scalar_one_or_none()
    if group is None:
        raise _group_not_found(group_id)
    return group


def _get_membership(group_id: int, user_id: int, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def _require_member(group_id: int, user_id: int, session: Session) -> Membership:
    """Returns the caller's Membership or raises GROUP_NOT_FOUND (404)."""
    membership = _get_membership(group_id, user_id, session)
    if membership is None:
        raise _group_not_found(group_id)
    return membership


def _require_admin(membership: Membership, action: str) -> None:
    if membership.role != MemberRole.ADMIN:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only a group admin may {action}.",
            403,
        )


def _get_memberships(group_id: int, session: Session) -> list[Membership]:
    """Current memberships in canonical (insertion) order."""
    stmt = (
        select(Membership)
        .where(Membership.group_id == group_id)
        .order_by(Membership.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def _serialize_member(membership: Membership) -> dict:
    return {
        "user_id": membership.user_id,
        "name": membership.user.name,
        "email": membership.user.email,
        "role": membership.role.value,
        "joined_at": _iso(membership.joined_at),
    }


# ── Shared read helpers (also used by the ledger and balance services) ─────

def get_visible_group(
        group_id: int,
        caller_id: int,
        session: Session,
        lock: bool = False,
) -> Group:
    """Active group that `caller_id` belongs to, else GROUP_NOT_FOUND (404)."""
    group = _get_active_group_or_404(group_id, session, lock=lock)
    _require_member(group_id, caller_id, session)
    return group


def get_member_ids(group_id: int, session: Session) -> list[int]:
    """User ids of the current members, in canonical order."""
    stmt = (
        select(Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def serialize_group(group: Group, memberships: list[Membership]) -> dict:
    """Serialises a Group with its member list to a plain dict."""
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "created_by_user_id": group.created_by_user_id,
        "total_expense": money(group.total_expense),
        "is_active": group.is_active,
        "created_at": _iso(group.created_at),
        "updated_at": _iso(group.updated_at),
        "members": [_serialize_member(m) for m in memberships],
    }


def get_group_dict(group: Group, session: Session) -> dict:
    return serialize_group(group, _get_memberships(group.id, session))


# ── Public service functions ───────────────────────────────────────────────

def create_group(
        name: str,
        creator_id: int,
        session: Session,
        description: str | None = None,
) -> dict:
    """
    Creates a new group. The creator becomes its sole member and admin.

    Raises:
      AppError(USER_NOT_FOUND, 404) — the token's user is unknown to the ledger
    """
    creator = session.get(User, creator_id)
    if creator is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {creator_id} does not exist.",
            404,
        )

    group = Group(
        name=name.strip(),
        description=description,
        created_by_user_id=creator_id,
    )
    session.add(group)
    session.flush()  # populate group.id before creating membership

    membership = Membership(
        user_id=creator_id,
        group_id=group.id,
        role=MemberRole.ADMIN,
    )
    session.add(membership)
    session.flush()

    logger.info("Group %s created by user %s", group.id, creator_id)
    return serialize_group(group, [membership])


def list_groups(user_id: int, session: Session) -> list[dict]:
    """
    Returns the active groups the user belongs to, oldest first.

    Lightweight dicts (member count, no member list); the full member list
    is available via get_group().
    """
    member_count = (
        select(func.count(Membership.id))
        .where(Membership.group_id == Group.id)
        .correlate(Group)
        .scalar_subquery()
    )
    stmt = (
        select(Group, member_count)
        .join(Membership, Group.id == Membership.group_id)
        .where(
            Membership.user_id == user_id,
            Group.is_active.is_(True),
        )
        .order_by(Group.created_at.asc(), Group.id.asc())
    )

    return [
        {
            "id": g.id,
            "name": g.name,
            "description": g.description,
            "created_by_user_id": g.created_by_user_id,
            "total_expense": money(g.total_expense),
            "member_count": count,
            "created_at": _iso(g.created_at),
        }
        for g, count in session.execute(stmt).all()
    ]


def get_group(group_id: int, caller_id: int, session: Session) -> dict:
    """Returns full group details including the current member list."""
    group = get_visible_group(group_id, caller_id, session)
    return get_group_dict(group, session)


def update_group(group_id: int, caller_id: int, data: dict, session: Session) -> dict:
    """
    Renames / re-describes a group. Admin only.

    `data` is the validated dict from UpdateGroupSchema; only keys present
    are applied.
    """
    group = _get_active_group_or_404(group_id, session, lock=True)
    membership = _require_member(group_id, caller_id, session)
    _require_admin(membership, "edit this group")

    if "name" in data:
        group.name = data["name"].strip()
    if "description" in data:
        group.description = data["description"]

    group.updated_at = datetime.now(timezone.utc)
    session.flush()
    return get_group_dict(group, session)


def delete_group(group_id: int, caller_id: int, session: Session) -> None:
    """
    Soft-deletes a group (is_active = False). Admin only.

    Members, expenses and ledger entries are retained; the group simply
    disappears from every member-scoped query.
    """
    group = _get_active_group_or_404(group_id, session, lock=True)
    membership = _require_member(group_id, caller_id, session)
    _require_admin(membership, "delete this group")

    group.is_active = False
    group.updated_at = datetime.now(timezone.utc)
    session.flush()
    logger.info("Group %s soft-deleted by user %s", group_id, caller_id)


def find_user_by_email(email: str, session: Session) -> User:
    """Raises USER_NOT_FOUND (404) when no user has this email."""
    user = session.execute(
        select(User).where(User.email == email.strip().lower())
    ).scalar_one_or_none()
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"No user with email {email!r}.",
            404,
            field="email",
        )
    return user


def add_member(
        group_id: int,
        caller_id: int,
        session: Session,
        user_id: int | None = None,
        email: str | None = None,
        role: MemberRole = MemberRole.MEMBER,
) -> dict:
    """
    Adds a user, identified by user_id or email, to a group. Admin only.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)  — group missing/inactive or caller not a member
      AppError(FORBIDDEN, 403)        — caller is not an admin
      AppError(USER_NOT_FOUND, 404)   — target user does not exist
      AppError(ALREADY_MEMBER, 409)   — user is already in the group
    """
    _get_active_group_or_404(group_id, session, lock=True)
    caller_membership = _require_member(group_id, caller_id, session)
    _require_admin(caller_membership, "add members")

    if user_id is not None:
        target = session.get(User, user_id)
        if target is None:
            raise AppError(
                ErrorCode.USER_NOT_FOUND,
                f"User {user_id} does not exist.",
                404,
                field="user_id",
            )
    else:
        target = find_user_by_email(email or "", session)

    if _get_membership(group_id, target.id, session) is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"User {target.id} is already a member of group {group_id}.",
            409,
        )

    membership = Membership(user_id=target.id, group_id=group_id, role=role)
    session.add(membership)
    session.flush()

    return {
        "group_id": group_id,
        **_serialize_member(membership),
    }


def remove_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
) -> dict:
    """
    Removes a user from a group.

    Authorization:
      - An admin may remove any member (including themselves).
      - Any member may remove themselves.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)   — group missing/inactive or caller not a member
      AppError(FORBIDDEN, 403)         — caller may not remove this user
      AppError(MEMBER_NOT_FOUND, 404)  — target is not a member
      AppError(LAST_MEMBER, 422)       — target is the only member left

    Returns: {"removed_user_id", "promoted_user_id"}; promoted_user_id is set
    when the last admin left and another member was promoted.
    """
    _get_active_group_or_404(group_id, session, lock=True)
    caller_membership = _require_member(group_id, caller_id, session)

    if caller_id != target_user_id:
        _require_admin(caller_membership, "remove other members")

    memberships = _get_memberships(group_id, session)
    target = next((m for m in memberships if m.user_id == target_user_id), None)
    if target is None:
        raise AppError(
            ErrorCode.MEMBER_NOT_FOUND,
            f"User {target_user_id} is not a member of group {group_id}.",
            404,
        )

    remaining = [m for m in memberships if m.id != target.id]
    if not remaining:
        raise AppError(
            ErrorCode.LAST_MEMBER,
            "The last member cannot leave; delete the group instead.",
            422,
        )

    session.delete(target)

    promoted_user_id = None
    if not any(m.role == MemberRole.ADMIN for m in remaining):
        successor = remaining[0]
        successor.role = MemberRole.ADMIN
        promoted_user_id = successor.user_id
        logger.info(
            "Group %s: promoted user %s to admin after last admin left",
            group_id, successor.user_id,
        )

    session.flush()
    return {
        "removed_user_id": target_user_id,
        "promoted_user_id": promoted_user_id,
    }
