"""
Unit tests for point and frame value types
"""

import pytest
import numpy as np
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.errors import AlignmentError, NumericSingularityError, UnsupportedFormatError
from common.types import (
    AffinePoint,
    HomogeneousPoint,
    ImageFrame,
    Point,
    array_to_points,
    points_to_array,
    round_point,
    to_affine,
    to_homogeneous,
)
from common.utils import to_numpy_3x3


class TestPoints:
    """Test cases for the three point kinds"""

    def test_point_is_integer(self):
        p = Point(3.0, 4.0)
        assert p.as_tuple() == (3, 4)
        assert isinstance(p.x, int)

    def test_points_are_immutable(self):
        p = AffinePoint(1.0, 2.0)
        with pytest.raises(AttributeError):
            p.x = 5.0

    def test_homogeneous_equality_by_ratio(self):
        """(2, 4, 2) and (1, 2, 1) are the same point"""
        assert HomogeneousPoint(2.0, 4.0, 2.0) == HomogeneousPoint(1.0, 2.0, 1.0)
        assert HomogeneousPoint(2.0, 4.0, 2.0) != HomogeneousPoint(2.0, 4.0, 1.0)
        assert hash(HomogeneousPoint(2.0, 4.0, 2.0)) == hash(HomogeneousPoint(1.0, 2.0))

    def test_points_at_infinity(self):
        """Directions compare by parallelism; never equal to finite points"""
        a = HomogeneousPoint(1.0, 2.0, 0.0)
        assert a.is_at_infinity
        assert a == HomogeneousPoint(2.0, 4.0, 0.0)
        assert a != HomogeneousPoint(2.0, 1.0, 0.0)
        assert a != HomogeneousPoint(1.0, 2.0, 1.0)

    def test_normalized(self):
        p = HomogeneousPoint(4.0, 6.0, 2.0)
        assert not p.is_normalized
        assert p.normalized().as_tuple() == (2.0, 3.0, 1.0)
        assert p.normalized().is_normalized
        with pytest.raises(NumericSingularityError):
            HomogeneousPoint(1.0, 1.0, 0.0).normalized()

    def test_conversions(self):
        assert to_homogeneous(Point(3, 4)).as_tuple() == (3.0, 4.0, 1.0)
        assert to_affine(HomogeneousPoint(3.0, 4.0, 2.0)) == AffinePoint(1.5, 2.0)
        assert round_point(HomogeneousPoint(7.0, 3.0, 2.0)) == Point(4, 2)
        with pytest.raises(NumericSingularityError):
            to_affine(HomogeneousPoint(1.0, 0.0, 0.0))

    def test_points_to_array(self):
        pts = [Point(1, 2), AffinePoint(3.5, 4.5), HomogeneousPoint(10.0, 20.0, 10.0)]
        np.testing.assert_allclose(points_to_array(pts), [[1, 2], [3.5, 4.5], [1, 2]])
        hom = points_to_array(pts[:2], homogeneous=True)
        assert hom.shape == (2, 3)
        assert (hom[:, 2] == 1.0).all()
        assert points_to_array([]).shape == (0, 2)

    def test_array_to_points(self):
        assert array_to_points(np.array([[1, 2], [3, 4]])) == [Point(1, 2), Point(3, 4)]


class TestImageFrame:
    """Test cases for the input image container"""

    def test_from_array(self):
        img = np.zeros((20, 30, 3), dtype=np.uint8)
        f = ImageFrame.from_array(img, source="left.png")
        assert (f.width, f.height, f.channels) == (30, 20, 3)
        assert f.to_meta() == {"source": "left.png", "width": 30, "height": 20, "channels": 3}

    def test_gray_has_no_channel_count(self):
        assert ImageFrame.from_array(np.zeros((5, 5), dtype=np.uint8)).channels is None

    @pytest.mark.parametrize("dtype", [np.uint16, np.float32])
    def test_non_uint8_rejected(self, dtype):
        """Only 8-bit frames are accepted; nothing is clipped"""
        img = np.array([[5, 300]], dtype=dtype)
        with pytest.raises(UnsupportedFormatError, match="8-bit"):
            ImageFrame.from_array(img)

    def test_bad_channel_count(self):
        with pytest.raises(UnsupportedFormatError):
            ImageFrame.from_array(np.zeros((4, 4, 2), dtype=np.uint8))

    def test_shape_mismatch(self):
        with pytest.raises(ValueError):
            ImageFrame(source="x", width=3, height=4, frame=np.zeros((4, 4), dtype=np.uint8))

    def test_errors_share_a_base(self):
        assert issubclass(UnsupportedFormatError, AlignmentError)
        assert issubclass(UnsupportedFormatError, ValueError)
        assert issubclass(NumericSingularityError, ArithmeticError)


class TestUtils:
    def test_to_numpy_3x3(self):
        a = to_numpy_3x3([[1, 0, 0], [0, 1, 0], [0, 0, 1]])
        assert a.dtype == np.float64
        with pytest.raises(ValueError):
            to_numpy_3x3(np.eye(2))
