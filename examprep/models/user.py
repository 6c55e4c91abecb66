from mongoengine import EmailField, StringField, ReferenceField, BooleanField, NULLIFY

from examprep.models.base import BaseDocument
from examprep.models.batch import Batch


class User(BaseDocument):
    """User document.

    Fields:
    - name (str): Full name
    - email (EmailStr, unique): Login identifier
    - password (str, hashed): Bcrypt-hashed password
    - token_version (str): Incremented on logout to invalidate tokens
    - batch (Ref[Batch]|None): decides which restricted tests are visible
    - is_suspended (bool): hidden from leaderboards while set
    - show_on_leaderboard (bool): privacy opt-out for global/batch boards
    """
    name = StringField(required=True, null=False)
    password = StringField(required=True, null=False)
    email = EmailField(required=True, null=False, unique=True)
    token_version = StringField(required=True, null=False, default="1")
    batch = ReferenceField(document_type=Batch, required=False, null=True, reverse_delete_rule=NULLIFY)
    is_suspended = BooleanField(required=True, null=False, default=False)
    show_on_leaderboard = BooleanField(required=True, null=False, default=True)

    meta = {
        "collection": "users",
        "indexes": [
            {"fields": ["batch"]},
        ],
    }

    def to_output(self, fields=None, exclude=None):
        exclude = list(exclude or []) + ["password", "token_version"]
        output = super().to_output(fields, exclude)
        output["batch"] = str(self.batch.id) if self.batch else None
        return output
