from typing import Annotated

from fastapi import APIRouter, Depends, Response

from finance_tracker.api.dependencies import get_tag_service, get_user_id
from finance_tracker.api.schemas import TagBulkCreate, TagBulkResult, TagCreate, TagReorderRequest, TagUpdate
from finance_tracker.models import Tag
from finance_tracker.services.tags import TagService

router = APIRouter(prefix="/api/v1/tags", tags=["tags"])

UserId = Annotated[str, Depends(get_user_id)]
Tags = Annotated[TagService, Depends(get_tag_service)]


@router.get("")
def list_tags(user_id: UserId, service: Tags) -> list[Tag]:
    return service.list_tags(user_id)


@router.post("", status_code=201)
def create_tag(req: TagCreate, user_id: UserId, service: Tags) -> Tag:
    return service.create_tag(user_id, req.name, color=req.color, description=req.description)


@router.post("/bulk", status_code=201)
def bulk_create_tags(req: TagBulkCreate, user_id: UserId, service: Tags) -> TagBulkResult:
    created, skipped = service.bulk_create_tags(user_id, req.names)
    return TagBulkResult(created=created, skipped=skipped)


@router.post("/reorder")
def reorder_tags(req: TagReorderRequest, user_id: UserId, service: Tags) -> list[Tag]:
    return service.reorder_tags(user_id, req.tag_ids)


@router.patch("/{tag_id}")
def update_tag(tag_id: str, req: TagUpdate, user_id: UserId, service: Tags) -> Tag:
    return service.update_tag(user_id, tag_id, req.model_dump(exclude_unset=True))


@router.delete("/{tag_id}", status_code=204)
def delete_tag(tag_id: str, user_id: UserId, service: Tags) -> Response:
    service.delete_tag(user_id, tag_id)
    return Response(status_code=204)
