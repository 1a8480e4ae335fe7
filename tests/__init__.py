"""
Alignment Test Suite

Tests for the two-image alignment core (Harris corners, correlation matching,
projective transforms, DLT and RANSAC homography estimation).

Structure:
- unit/: Unit tests for individual components
- integration/: End-to-end runs of the alignment pipeline and its CLI
"""
