from finance_tracker.domain.tags import next_tag_order, tag_name_key
from finance_tracker.errors import ConflictError, ValidationError
from finance_tracker.logger import get_logger
from finance_tracker.models import Tag, merge_update
from finance_tracker.services.store import LedgerStore

logger = get_logger(__name__)


class TagService:
    def __init__(self, store: LedgerStore):
        self.store = store

    def list_tags(self, user_id: str) -> list[Tag]:
        return self.store.list_tags(user_id)

    def _ensure_unique_name(self, user_id: str, name: str, exclude_id: str | None = None) -> None:
        key = tag_name_key(name)
        for tag in self.store.list_tags(user_id):
            if tag.id != exclude_id and tag_name_key(tag.name) == key:
                raise ConflictError(f"Tag '{name}' already exists")

    def create_tag(
        self,
        user_id: str,
        name: str,
        color: str | None = None,
        description: str | None = None,
    ) -> Tag:
        name = name.strip()
        if not name:
            raise ValidationError("Tag name must not be empty")
        self._ensure_unique_name(user_id, name)

        order = next_tag_order([tag.order for tag in self.store.list_tags(user_id)])
        tag = Tag(user_id=user_id, name=name, color=color, description=description, order=order)
        logger.debug("[TAGS] Created '%s' for %s", name, user_id)
        return self.store.put_tag(tag)

    def bulk_create_tags(self, user_id: str, names: list[str]) -> tuple[list[Tag], list[str]]:
        """Create every new name; names that already exist are returned as skipped."""
        created: list[Tag] = []
        skipped: list[str] = []
        for name in names:
            try:
                created.append(self.create_tag(user_id, name))
            except (ConflictError, ValidationError):
                skipped.append(name)
        return created, skipped

    def update_tag(self, user_id: str, tag_id: str, changes: dict) -> Tag:
        tag = self.store.get_tag(user_id, tag_id)
        if changes.get("name") is not None:
            name = changes["name"].strip()
            if not name:
                raise ValidationError("Tag name must not be empty")
            self._ensure_unique_name(user_id, name, exclude_id=tag_id)
            changes = {**changes, "name": name}
        updated = merge_update(tag, changes, required=("name",))
        return self.store.put_tag(updated)

    def delete_tag(self, user_id: str, tag_id: str) -> None:
        self.store.delete_tag(user_id, tag_id)

    def reorder_tags(self, user_id: str, tag_ids: list[str]) -> list[Tag]:
        tags = {tag.id: tag for tag in self.store.list_tags(user_id)}
        if len(set(tag_ids)) != len(tag_ids):
            raise ValidationError("Tag order contains duplicates")
        if set(tag_ids) != set(tags):
            raise ValidationError("Tag order must list every tag of the user exactly once")

        reordered = [tags[tag_id].model_copy(update={"order": index}) for index, tag_id in enumerate(tag_ids)]
        self.store.put_tags(reordered)
        return reordered
