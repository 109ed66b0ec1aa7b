"""Builders and stand-in segmenters shared by the test modules."""

from mask_studio.core.raster import RasterMask
from mask_studio.segmentation import SegmentationResult, Segmenter


def masks_from_points(width, height, points):
    mask = RasterMask(width, height)
    for x, y in points:
        mask.set(x, y, True)
    return mask


class CountingSegmenter(Segmenter):
    name = "counting"

    def __init__(self, class_map):
        self.class_map = class_map
        self.calls = 0

    def segment(self, image):
        self.calls += 1
        return SegmentationResult(class_map=self.class_map)


class FailingSegmenter(Segmenter):
    name = "failing"

    def __init__(self):
        self.calls = 0

    def segment(self, image):
        self.calls += 1
        raise RuntimeError("model crashed")
