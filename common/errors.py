from __future__ import annotations
"""
Error taxonomy shared by the alignment stages.

Format/argument errors and numeric singularities propagate to the caller.
Degenerate RANSAC samples never leave the estimator, and "no consensus" is a
regular result (see alignment.ransac.Outcome), not an exception.
"""


class AlignmentError(Exception):
    """Base class for every error raised by the alignment core."""


class UnsupportedFormatError(AlignmentError, ValueError):
    """Input channel layout is not 1, 3 or 4 bytes per pixel."""


class ArgumentMismatchError(AlignmentError, ValueError):
    """Mismatched correspondence counts, too few points, or an even window."""


class NumericSingularityError(AlignmentError, ArithmeticError):
    """A required inverse does not exist or a normalization is degenerate."""


class DegenerateSampleError(AlignmentError):
    """Minimal sample cannot define a model (internal to RANSAC)."""
