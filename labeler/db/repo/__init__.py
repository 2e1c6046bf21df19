from labeler.db.repo.labeling_repo import LabelingRepo

__all__ = ["LabelingRepo"]
