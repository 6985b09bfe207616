"""
Pose auto-correction for sign-ambiguous attitude metadata.

Camera vendors disagree on the polarity of yaw, pitch and roll. The
auto-corrector tries all eight sign combinations, projects the image center
for each and keeps the one with the lowest score

    score = max(1, range_m) + 50 / (|up| + 1e-6)

which penalizes long ground ranges and grazing rays. The search is a pure
function of the pose; candidates are evaluated on copies.
"""

import logging
from dataclasses import dataclass, replace
from itertools import product
from typing import Callable, List, Optional, Tuple

from .intersect import FailureKind
from .transforms import CameraPose

logger = logging.getLogger(__name__)

# evaluate(pose) -> (range_m, up component of the center ray), or None on a miss
EvaluateFn = Callable[[CameraPose], Optional[Tuple[float, float]]]


@dataclass(frozen=True)
class PoseCorrection:
    """Best-scoring attitude found by the auto-corrector."""
    yaw: float
    pitch: float
    roll: float
    score: float

    def apply(self, pose: CameraPose) -> CameraPose:
        return replace(pose, yaw=self.yaw, pitch=self.pitch, roll=self.roll)


def score_candidate(range_m: float, up: float) -> float:
    return max(1.0, range_m) + 50.0 / (abs(up) + 1e-6)


def sign_candidates(pose: CameraPose) -> List[Tuple[float, float, float]]:
    """All (yaw, pitch, roll) sign combinations, yaw varying slowest."""
    return list(product(
        (pose.yaw, -pose.yaw),
        (pose.pitch, -pose.pitch),
        (pose.roll, -pose.roll),
    ))


def auto_fix_pose(pose: CameraPose, evaluate: EvaluateFn) -> Optional[PoseCorrection]:
    """
    Pick the sign combination of yaw/pitch/roll that best hits the ground.

    Args:
        pose: Current camera pose (not modified)
        evaluate: Projection of the image center for a candidate pose

    Returns:
        PoseCorrection with the lowest score, or None if no combination
        intersects the ground
    """
    scored = []
    for yaw, pitch, roll in sign_candidates(pose):
        candidate = replace(pose, yaw=yaw, pitch=pitch, roll=roll)
        hit = evaluate(candidate)
        score = float('inf') if hit is None else score_candidate(*hit)
        logger.debug(f"Auto-fix candidate yaw={yaw} pitch={pitch} roll={roll}: score={score}")
        scored.append(PoseCorrection(yaw=yaw, pitch=pitch, roll=roll, score=score))

    # min() keeps the first of equal scores, so ties resolve in candidate order
    best = min(scored, key=lambda c: c.score)
    if best.score == float('inf'):
        logger.warning(f"Auto-fix: {FailureKind.POSE_AMBIGUOUS.message}. Check AMSL/AGL.")
        return None

    logger.info(
        f"Auto-fix -> yaw={best.yaw:.3f} pitch={best.pitch:.3f} roll={best.roll:.3f}"
    )
    return best
