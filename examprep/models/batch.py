from mongoengine import StringField

from examprep.models.base import BaseDocument


class Batch(BaseDocument):
    """A cohort of students; tests can be restricted to a set of batches."""
    name = StringField(required=True, null=False, unique=True)
    description = StringField(required=False, null=True)

    meta = {
        "collection": "batches",
        "indexes": [
            {"fields": ["name"], "unique": True},
        ],
    }
