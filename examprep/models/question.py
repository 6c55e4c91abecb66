from mongoengine import StringField, ListField, ValidationError, IntField

from examprep.utils.base import Difficulty
from examprep.models.base import BaseDocument


class Question(BaseDocument):
    """Question bank entry.

    Fields:
    - text (str),
    - options (list[str], at least two),
    - correct_options (list[int]): zero-based indices into `options`,
    - subject/topic (str),
    - difficulty (easy/medium/hard),
    - explanation (str|None).
    Validate enforces at least one correct option, all in range and unique.
    """
    text = StringField(required=True, null=False)
    options = ListField(StringField(), required=True, null=False, default=list)
    correct_options = ListField(IntField(min_value=0), required=True, null=False, default=list)
    subject = StringField(required=True, null=False)
    topic = StringField(required=False, null=True)
    difficulty = StringField(required=True, null=False, choices=Difficulty.choices(), default=Difficulty.MEDIUM.value)
    explanation = StringField(required=False, null=True)

    meta = {
        "collection": "questions",
        "indexes": [
            {"fields": ["subject"]},
            {"fields": ["subject", "topic"]},
            {"fields": ["difficulty"]},
        ],
    }

    def validate(self, clean=True):
        super().validate(clean)
        if len(self.options or []) < 2:
            raise ValidationError("A question needs at least two options")

        if not self.correct_options:
            raise ValidationError("At least one correct option is required")

        if len(set(self.correct_options)) != len(self.correct_options):
            raise ValidationError("Correct options must be unique")

        if any(index >= len(self.options) for index in self.correct_options):
            raise ValidationError("Correct option index out of range")

    def to_output(self, fields=None, exclude=None, reveal_answer=False):
        exclude = list(exclude or [])
        if not reveal_answer:
            exclude += ["correct_options", "explanation"]
        return super().to_output(fields, exclude)
