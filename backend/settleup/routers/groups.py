"""Groups: create, get, add/remove members."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from settleup.database import get_db
from settleup.models import Group, Member
from settleup.schemas import GroupCreate, GroupResponse, MemberCreate, Member as MemberInfo
from settleup.services.store import change_feed

router = APIRouter(prefix="/groups", tags=["groups"])


def _group_response(group: Group) -> GroupResponse:
    return GroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        created_at=group.created_at,
        members=[MemberInfo.model_validate(m) for m in group.members],
    )


def _get_group(db: Session, group_id: str) -> Group:
    group = db.query(Group).filter(Group.id == group_id).first()
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    return group


def _new_member(data: MemberCreate, position: int) -> Member:
    member = Member(name=data.name, is_admin=data.is_admin, position=position)
    if data.id:
        member.id = data.id
    return member


@router.post("", response_model=GroupResponse)
def create_group(data: GroupCreate, db: Session = Depends(get_db)):
    ids = [m.id for m in data.members if m.id]
    if len(ids) != len(set(ids)):
        raise HTTPException(status_code=400, detail="Member ids must be unique")
    group = Group(name=data.name, description=data.description)
    group.members = [_new_member(m, i) for i, m in enumerate(data.members)]
    db.add(group)
    db.commit()
    db.refresh(group)
    return _group_response(group)


@router.get("/{group_id}", response_model=GroupResponse)
def get_group(group_id: str, db: Session = Depends(get_db)):
    return _group_response(_get_group(db, group_id))


@router.post("/{group_id}/members", response_model=GroupResponse)
def add_group_member(group_id: str, data: MemberCreate, db: Session = Depends(get_db)):
    group = _get_group(db, group_id)
    if data.id and any(m.id == data.id for m in group.members):
        raise HTTPException(status_code=400, detail="Member already in group")
    position = max((m.position for m in group.members), default=-1) + 1
    group.members.append(_new_member(data, position))
    db.commit()
    db.refresh(group)
    change_feed.publish(group.id)
    return _group_response(group)


@router.delete("/{group_id}/members/{member_id}", response_model=GroupResponse)
def remove_group_member(group_id: str, member_id: str, db: Session = Depends(get_db)):
    group = _get_group(db, group_id)
    member = next((m for m in group.members if m.id == member_id), None)
    if not member:
        raise HTTPException(status_code=404, detail="Member not in this group")
    group.members.remove(member)
    db.commit()
    db.refresh(group)
    change_feed.publish(group.id)
    return _group_response(group)
