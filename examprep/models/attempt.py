from mongoengine import (
    LazyReferenceField,
    DateTimeField,
    StringField,
    IntField,
    ListField,
    FloatField,
    DictField,
    ObjectIdField,
    EmbeddedDocumentField,
)

from examprep.models.user import User
from examprep.models.test import Test
from examprep.utils.base import BaseEnum
from examprep.models.base import BaseDocument, BaseEmbeddedDocument, as_utc


class AttemptStatus(BaseEnum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    ABANDONED = "abandoned"


class AttemptSubjectScore(BaseEmbeddedDocument):
    """Embedded: per-subject outcome of a submitted attempt.

    Fields:
    - subject (str),
    - correct/incorrect/unanswered/total (int).
    """
    subject = StringField(required=True, null=False)
    correct = IntField(required=True, null=False, default=0)
    incorrect = IntField(required=True, null=False, default=0)
    unanswered = IntField(required=True, null=False, default=0)
    total = IntField(required=True, null=False, default=0)


class Attempt(BaseDocument):
    """One user's pass at a test, from start to submission.

    Fields:
    - user/test (lazy refs)
    - status: in_progress/submitted/abandoned
    - started_at/submitted_at
    - question_order (list[ObjectId]): shuffled once at start, never rewritten
    - answers (dict): question id -> sorted selected option indices
    - revision (int): bumped on every answer write, guards submit snapshots
    - score/correct/incorrect/unanswered/total_questions: set at submit
    - subject_scores (list[AttemptSubjectScore]): set at submit
    - active_key (str): "<user>:<test>" while in progress, unique across the
      collection; suffixed with the attempt id once the attempt closes
    """
    user = LazyReferenceField(document_type=User, required=True, null=False)
    test = LazyReferenceField(document_type=Test, required=True, null=False)

    status = StringField(required=True, null=False, choices=AttemptStatus.choices())
    started_at = DateTimeField(required=True, null=False)
    submitted_at = DateTimeField(required=False, null=True)

    question_order = ListField(ObjectIdField(), null=False, default=list)
    answers = DictField(field=ListField(IntField(min_value=0)), null=False, default=dict)
    revision = IntField(required=True, null=False, default=0)

    score = FloatField(required=True, null=False, default=0)
    correct = IntField(required=True, null=False, default=0)
    incorrect = IntField(required=True, null=False, default=0)
    unanswered = IntField(required=True, null=False, default=0)
    total_questions = IntField(required=True, null=False, default=0)
    subject_scores = ListField(EmbeddedDocumentField(AttemptSubjectScore), null=False, default=list)

    active_key = StringField(required=True, null=False, unique=True)

    meta = {
        "collection": "attempts",
        "indexes": [
            {"fields": ["user", "test", "-started_at"]},
            {"fields": ["test", "status"]},
            {"fields": ["status"]},
        ],
    }

    @staticmethod
    def open_key(user_id, test_id) -> str:
        return f"{user_id}:{test_id}"

    def closed_key(self) -> str:
        return f"{self.open_key(self.user.pk, self.test.pk)}:{self.id}"

    @property
    def time_taken_seconds(self) -> float | None:
        if not self.submitted_at or not self.started_at:
            return None
        return (as_utc(self.submitted_at) - as_utc(self.started_at)).total_seconds()

    def to_output(self, fields=None, exclude=None):
        exclude = list(exclude or []) + ["active_key", "revision", "metadata"]
        return super().to_output(fields, exclude)
