from pressurefield.model.deformation import DeformationModel, FramePose, Pose, smooth_damp
from pressurefield.model.fingers import FingerModel, FingerPose

__all__ = [
    "DeformationModel",
    "FingerModel",
    "FingerPose",
    "FramePose",
    "Pose",
    "smooth_damp",
]
