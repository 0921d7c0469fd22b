"""Geometry primitives and the segment/box crossing test."""

from checkpoint_racer.geometry.intersect import point_in_box, segment_intersects_box
from checkpoint_racer.geometry.models import Box3, Point3

__all__ = ["Box3", "Point3", "point_in_box", "segment_intersects_box"]
