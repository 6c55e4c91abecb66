from examprep.utils.base.enums import BaseEnum, Difficulty
from examprep.utils.base.errors import (
    ServiceError,
    ValidationError,
    NotFoundError,
    ConflictError,
    AttemptExpiredError,
)
