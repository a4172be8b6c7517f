"""DICOM frame source for the viewer canvas.

Decodes single- and multi-frame DICOM with pydicom into display-ready
8-bit bitmaps, derives one image id per frame, and extracts the pixel
spacing the measurement tools need.
"""

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any

import numpy as np
from PIL import Image

from ecocol.core.logging import get_logger

logger = get_logger(__name__)

# Sequence of Ultrasound Regions sub-tags (Physical Delta X/Y, in cm)
REGION_PHYSICAL_DELTA_X_SUBTAG = 0x0018602C
REGION_PHYSICAL_DELTA_Y_SUBTAG = 0x0018602E


@dataclass
class FrameSequence:
    """Decoded frames of one DICOM object."""

    base_id: str
    image_ids: list[str]
    frames: list[Image.Image]
    pixel_spacing: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def number_of_frames(self) -> int:
        return len(self.frames)


def frame_image_ids(base_id: str, number_of_frames: int) -> list[str]:
    """One image id per frame.

    Multi-frame objects get ``<base>?frame=<i>`` ids; a single-frame object
    keeps the bare base id.
    """
    if number_of_frames > 1:
        return [f"{base_id}?frame={i}" for i in range(number_of_frames)]
    return [base_id]


def _first_float(value: Any) -> float | None:
    if value is None:
        return None
    if not isinstance(value, (str, bytes)) and hasattr(value, "__len__"):
        if len(value) == 0:
            return None
        value = value[0]
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def extract_pixel_spacing(ds: Any) -> float | None:
    """Millimetres per pixel along rows, or None when the header has none.

    Ultrasound region calibration (cm/px) wins over Pixel Spacing, which
    wins over Imager Pixel Spacing.
    """
    regions = getattr(ds, "SequenceOfUltrasoundRegions", None)
    if regions:
        for region in regions:
            if REGION_PHYSICAL_DELTA_Y_SUBTAG in region:
                delta_y = abs(float(region[REGION_PHYSICAL_DELTA_Y_SUBTAG].value))
                if delta_y > 0:
                    return delta_y * 10.0

    for keyword in ("PixelSpacing", "ImagerPixelSpacing"):
        spacing = _first_float(getattr(ds, keyword, None))
        if spacing and spacing > 0:
            return spacing
    return None


def _to_uint8(
    pixels: np.ndarray,
    window_center: float | None = None,
    window_width: float | None = None,
) -> np.ndarray:
    """Window (or min/max stretch) pixel values to 0-255."""
    if pixels.dtype == np.uint8 and window_center is None:
        return pixels
    data = pixels.astype(np.float32)
    if window_center is not None and window_width:
        min_val = window_center - window_width / 2
        max_val = window_center + window_width / 2
    else:
        min_val = float(data.min())
        max_val = float(data.max())
    scale = (max_val - min_val) or 1.0
    data = np.clip(data, min_val, max_val)
    return ((data - min_val) / scale * 255).astype(np.uint8)


def _split_frames(pixel_array: np.ndarray, number_of_frames: int, is_color: bool) -> list[np.ndarray]:
    if number_of_frames > 1 or pixel_array.ndim == (4 if is_color else 3):
        return [pixel_array[i] for i in range(pixel_array.shape[0])]
    return [pixel_array]


def frames_from_arrays(
    arrays: list[np.ndarray],
    base_id: str = "image",
    pixel_spacing: float | None = None,
) -> FrameSequence:
    """Build a sequence from already decoded arrays (grayscale or RGB)."""
    frames = [Image.fromarray(_to_uint8(np.asarray(array))) for array in arrays]
    return FrameSequence(
        base_id=base_id,
        image_ids=frame_image_ids(base_id, len(frames)),
        frames=frames,
        pixel_spacing=pixel_spacing,
    )


def load_frame_sequence(source: Path | str | bytes, base_id: str | None = None) -> FrameSequence:
    """Decode a DICOM file (path or bytes) into a frame sequence.

    Args:
        source: DICOM file path or raw file bytes
        base_id: Image id prefix; defaults to the SOP Instance UID

    Raises:
        ValueError: If the object carries no decodable pixel data

    """
    import pydicom

    ds = pydicom.dcmread(BytesIO(source) if isinstance(source, bytes) else str(source))
    try:
        pixel_array = ds.pixel_array
    except Exception as e:
        logger.error("Failed to decode pixel data", error=str(e))
        raise ValueError(f"Cannot extract pixel data: {e}") from e

    samples_per_pixel = int(getattr(ds, "SamplesPerPixel", 1))
    number_of_frames = int(getattr(ds, "NumberOfFrames", 1) or 1)
    is_color = samples_per_pixel > 1

    window_center = window_width = None
    if not is_color:
        slope = float(getattr(ds, "RescaleSlope", 1.0))
        intercept = float(getattr(ds, "RescaleIntercept", 0.0))
        if slope != 1.0 or intercept != 0.0:
            pixel_array = pixel_array * slope + intercept
        window_center = _first_float(getattr(ds, "WindowCenter", None))
        window_width = _first_float(getattr(ds, "WindowWidth", None))

    frames = []
    for frame in _split_frames(pixel_array, number_of_frames, is_color):
        if is_color and frame.ndim == 3 and frame.shape[-1] > 3:
            frame = frame[:, :, :3]
        frames.append(Image.fromarray(_to_uint8(frame, window_center, window_width)))

    base = base_id or str(getattr(ds, "SOPInstanceUID", "image"))
    sequence = FrameSequence(
        base_id=base,
        image_ids=frame_image_ids(base, len(frames)),
        frames=frames,
        pixel_spacing=extract_pixel_spacing(ds),
        metadata={
            "patient_id": str(getattr(ds, "PatientID", "") or "") or None,
            "patient_name": str(getattr(ds, "PatientName", "") or "") or None,
            "study_instance_uid": str(getattr(ds, "StudyInstanceUID", "") or "") or None,
            "modality": str(getattr(ds, "Modality", "") or "") or None,
            "rows": int(getattr(ds, "Rows", 0) or 0),
            "columns": int(getattr(ds, "Columns", 0) or 0),
        },
    )
    logger.info(
        "DICOM frames decoded",
        base_id=base,
        frames=sequence.number_of_frames,
        pixel_spacing=sequence.pixel_spacing,
    )
    return sequence


class StudyFrameIndex:
    """Maps each study to the ordered image ids of every frame it holds.

    Multi-frame objects contribute one id per frame, so a study shared with
    another site keeps all of its frames rather than only the first.
    """

    def __init__(self):
        self._image_ids: dict[str, list[str]] = {}

    def register(self, study_id: str, sequences: list[FrameSequence]) -> list[str]:
        """Replace the frame ids stored for ``study_id``."""
        image_ids = [image_id for sequence in sequences for image_id in sequence.image_ids]
        self._image_ids[study_id] = image_ids
        logger.debug("Study frames registered", study_id=study_id, frames=len(image_ids))
        return list(image_ids)

    def get(self, study_id: str) -> list[str]:
        return list(self._image_ids.get(study_id, []))

    def remove(self, study_id: str) -> bool:
        return self._image_ids.pop(study_id, None) is not None

    def __contains__(self, study_id: str) -> bool:
        return study_id in self._image_ids

    def __len__(self) -> int:
        return len(self._image_ids)
