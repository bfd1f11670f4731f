"""Page perception: segmentation into labelled leaves and repeated-pattern generalization."""

from pagesense.perception.labels import Label, classify

__all__ = ["Label", "classify"]
