from labeler.db.models.labeling import LabelingRule, ProcessedRecordRow

__all__ = [
    "LabelingRule",
    "ProcessedRecordRow",
]
