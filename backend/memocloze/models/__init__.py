from memocloze.models.document import (
    Document,
    DocumentCreate,
    DocumentList,
    DocumentUpdate,
)
from memocloze.models.review import (
    ReviewRequest,
    ReviewResult,
    ReviewStats,
    SpanList,
    SpanView,
)
from memocloze.models.schedule import (
    ClozeState,
    Grade,
    PersistenceRecord,
    ReviewSchedule,
)

__all__ = [
    "ClozeState",
    "Document",
    "DocumentCreate",
    "DocumentList",
    "DocumentUpdate",
    "Grade",
    "PersistenceRecord",
    "ReviewRequest",
    "ReviewResult",
    "ReviewSchedule",
    "ReviewStats",
    "SpanList",
    "SpanView",
]
