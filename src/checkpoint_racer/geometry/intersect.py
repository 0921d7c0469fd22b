"""Segment vs axis-aligned box intersection (slab method).

Each axis clips the parametric range ``[t_lo, t_hi]`` of the segment
``p1 + t * (p2 - p1)``, starting from ``[0, 1]``.  The segment touches the
box iff the range is still non-empty after all three axes.  Both the segment
and the box are closed, so grazing a face or an edge counts as a hit.
"""

from __future__ import annotations

from checkpoint_racer.geometry.models import Box3, Point3

DEFAULT_EPSILON = 1e-9  # direction components below this are treated as parallel


def point_in_box(p: Point3, box: Box3) -> bool:
    """Return True if *p* lies inside the closed *box*."""
    return box.contains(p)


def segment_intersects_box(
    p1: Point3,
    p2: Point3,
    box: Box3,
    epsilon: float = DEFAULT_EPSILON,
) -> bool:
    """Return True if the closed segment *p1* → *p2* shares a point with *box*.

    A degenerate segment (``p1 == p2``) reduces to :func:`point_in_box`
    because every axis takes the parallel branch.

    Parameters
    ----------
    p1, p2:
        Segment endpoints, typically the previous and current position of a
        tracked player.
    box:
        The checkpoint volume.
    epsilon:
        Direction components with ``abs(d) <= epsilon`` are treated as
        parallel to that slab.
    """
    t_lo = 0.0
    t_hi = 1.0

    for origin, end, lo, hi in (
        (p1.x, p2.x, box.min.x, box.max.x),
        (p1.y, p2.y, box.min.y, box.max.y),
        (p1.z, p2.z, box.min.z, box.max.z),
    ):
        d = end - origin
        if abs(d) <= epsilon:
            if origin < lo or origin > hi:
                return False
            continue

        t0 = (lo - origin) / d
        t1 = (hi - origin) / d
        if t0 > t1:
            t0, t1 = t1, t0

        t_lo = max(t_lo, t0)
        t_hi = min(t_hi, t1)
        if t_lo > t_hi:
            return False

    return True
