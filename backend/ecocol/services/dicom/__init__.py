"""DICOM services module."""

from ecocol.services.dicom.frames import (
    FrameSequence,
    StudyFrameIndex,
    frame_image_ids,
    load_frame_sequence,
)

__all__ = ["FrameSequence", "StudyFrameIndex", "frame_image_ids", "load_frame_sequence"]
