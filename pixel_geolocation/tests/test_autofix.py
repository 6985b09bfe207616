"""
Tests for attitude sign auto-correction.
"""

import pytest

from pixel_geolocation.autofix import (
    PoseCorrection,
    auto_fix_pose,
    score_candidate,
    sign_candidates,
)
from pixel_geolocation.transforms import CameraPose

POSE = CameraPose(lat=40.0, lon=44.5, altitude_amsl=120.0, yaw=30.0, pitch=-20.0, roll=5.0)


class TestScore:
    """Tests for the candidate score."""

    def test_short_range_is_clamped(self):
        assert score_candidate(0.2, 1.0) == pytest.approx(1.0 + 50.0 / (1.0 + 1e-6))

    def test_grazing_ray_is_penalized(self):
        assert score_candidate(100.0, 0.05) > score_candidate(100.0, 0.9)

    def test_sign_of_up_is_ignored(self):
        assert score_candidate(10.0, -0.5) == score_candidate(10.0, 0.5)


class TestSignCandidates:
    """Tests for candidate enumeration."""

    def test_eight_combinations(self):
        candidates = sign_candidates(POSE)
        assert len(candidates) == 8
        assert len(set(candidates)) == 8

    def test_input_signs_first(self):
        assert sign_candidates(POSE)[0] == (30.0, -20.0, 5.0)

    def test_yaw_varies_slowest(self):
        yaws = [c[0] for c in sign_candidates(POSE)]
        assert yaws == [30.0] * 4 + [-30.0] * 4


class TestAutoFixPose:
    """Tests for the sign search."""

    def test_picks_lowest_score(self):
        def evaluate(pose):
            # Only flipping pitch gives a short, steep ray
            if pose.pitch > 0:
                return 10.0, -0.9
            return 500.0, -0.2

        best = auto_fix_pose(POSE, evaluate)
        assert best.pitch == 20.0
        assert best.yaw == 30.0
        assert best.roll == 5.0
        assert best.score == pytest.approx(score_candidate(10.0, -0.9))

    def test_ties_keep_input_signs(self):
        best = auto_fix_pose(POSE, lambda pose: (42.0, -0.7))
        assert (best.yaw, best.pitch, best.roll) == (30.0, -20.0, 5.0)

    def test_misses_are_skipped(self):
        def evaluate(pose):
            if pose.roll < 0 and pose.yaw < 0:
                return 80.0, -0.5
            return None

        best = auto_fix_pose(POSE, evaluate)
        assert (best.yaw, best.pitch, best.roll) == (-30.0, -20.0, -5.0)

    def test_no_intersection_returns_none(self):
        assert auto_fix_pose(POSE, lambda pose: None) is None

    def test_input_pose_is_not_modified(self):
        seen = []

        def evaluate(pose):
            seen.append(pose)
            return 1.0, -1.0

        auto_fix_pose(POSE, evaluate)
        assert POSE == CameraPose(40.0, 44.5, 120.0, 30.0, -20.0, 5.0)
        assert all(p.lat == POSE.lat and p.altitude_amsl == POSE.altitude_amsl for p in seen)

    def test_deterministic(self):
        def evaluate(pose):
            return abs(pose.yaw + pose.pitch + pose.roll), -0.5

        assert auto_fix_pose(POSE, evaluate) == auto_fix_pose(POSE, evaluate)

    def test_apply(self):
        correction = PoseCorrection(yaw=-30.0, pitch=20.0, roll=-5.0, score=3.0)
        fixed = correction.apply(POSE)
        assert (fixed.yaw, fixed.pitch, fixed.roll) == (-30.0, 20.0, -5.0)
        assert fixed.altitude_amsl == POSE.altitude_amsl


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
