from datetime import datetime, timezone
from typing import Any
from bson.objectid import ObjectId
from mongoengine import Document, DictField, DateTimeField, EmbeddedDocument
from mongoengine.base.datastructures import LazyReference


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes coming back from drivers without tz_aware."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseDocumentMixin:
    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, Document):
            return value.to_output() if hasattr(value, "to_output") else str(value.id)
        elif isinstance(value, LazyReference):
            return str(value.pk)
        elif isinstance(value, EmbeddedDocument):
            value = {k: self._sanitize_value(getattr(value, k)) for k in value._fields}
        if isinstance(value, list):
            return [self._sanitize_value(v) for v in value]
        if isinstance(value, dict):
            return {k: self._sanitize_value(v) for k, v in value.items()}
        if isinstance(value, datetime):
            return as_utc(value).isoformat()
        if isinstance(value, ObjectId):
            return str(value)
        return value

    def to_output(self, fields=None, exclude=None):
        data: dict[str, Any] = {}
        exclude = exclude or []
        fields = fields or self._fields.keys()

        for field in fields:
            if field in exclude or field == "id":
                continue
            value = getattr(self, field)
            data[field] = self._sanitize_value(value)

        if getattr(self, "id", None) is not None:
            data["id"] = str(self.id)
        return data

    def to_dict(self, fields=None, exclude=None):
        return self.to_output(fields=fields, exclude=exclude)


class BaseEmbeddedDocument(EmbeddedDocument, BaseDocumentMixin):
    meta = {
        "abstract": True,
    }


class BaseDocument(Document, BaseDocumentMixin):
    metadata = DictField(default=dict, null=False)
    created_at = DateTimeField(default=utcnow, null=False)
    updated_at = DateTimeField(default=utcnow, null=False)

    meta = {
        "abstract": True,
    }

    def save(self, *args, **kwargs):
        self.updated_at = utcnow()
        return super().save(*args, **kwargs)
