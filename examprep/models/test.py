from mongoengine import StringField, ReferenceField, ListField, IntField, FloatField, BooleanField, PULL

from examprep.models.base import BaseDocument
from examprep.models.batch import Batch
from examprep.models.question import Question
from examprep.utils.base import BaseEnum


class TestStatus(BaseEnum):
    __test__ = False

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class Test(BaseDocument):
    """Test definition.

    Fields:
    - title/description (str)
    - questions (list[Ref[Question]]): presentation order before shuffling
    - duration_minutes (int)
    - total_marks (float): value of a perfect attempt
    - negative_marking (float): units subtracted per incorrect answer
    - status (str): draft/published/archived
    - batches (list[Ref[Batch]]): empty means visible to every student
    - answer_key_published (bool): gates answer review and leaderboards
    """
    __test__ = False

    title = StringField(required=True, null=False)
    description = StringField(required=False, null=True, default="")
    questions = ListField(ReferenceField(document_type=Question, reverse_delete_rule=PULL), null=False, default=list)
    duration_minutes = IntField(required=True, null=False, min_value=1)
    total_marks = FloatField(required=True, null=False, min_value=0)
    negative_marking = FloatField(required=True, null=False, default=0, min_value=0)
    status = StringField(required=True, null=False, choices=TestStatus.choices(), default=TestStatus.DRAFT.value)
    batches = ListField(ReferenceField(document_type=Batch), null=False, default=list)
    answer_key_published = BooleanField(required=True, null=False, default=False)

    meta = {
        "collection": "tests",
        "indexes": [
            {"fields": ["status"]},
        ],
    }

    @property
    def question_ids(self) -> list[str]:
        return [str(q.id) for q in self.questions]

    def is_visible_to(self, batch: Batch | None) -> bool:
        """Published and either unrestricted or restricted to the given batch."""
        if self.status != TestStatus.PUBLISHED.value:
            return False
        if not self.batches:
            return True
        if batch is None:
            return False
        return any(b.id == batch.id for b in self.batches)

    def to_output(self, fields=None, exclude=None):
        exclude = list(exclude or []) + ["questions", "batches"]
        output = super().to_output(fields, exclude)
        output["questions"] = self.question_ids
        output["batches"] = [str(b.id) for b in self.batches]
        return output
