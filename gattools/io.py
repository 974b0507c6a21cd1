"""
TIFF input/output for calibrated label images.

Calibration is read from the TIFF resolution tags. ImageJ files carry the
physical unit in their metadata; nanometre, micron, millimetre, centimetre and
metre units are converted to microns. Plain TIFFs are accepted when the
resolution unit is centimetres. Anything else (e.g. ImageJ "pixel") is treated
as uncalibrated.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import tifffile
from loguru import logger
from tifffile import TiffFile

from gattools.labels.types import LabelImage, require_calibration

_UM_PER_UNIT = {
    "nm": 1e-3,
    "nanometer": 1e-3,
    "nanometre": 1e-3,
    "micron": 1.0,
    "microns": 1.0,
    "um": 1.0,
    "µm": 1.0,
    "μm": 1.0,
    "\\u00b5m": 1.0,
    "mm": 1e3,
    "millimeter": 1e3,
    "millimetre": 1e3,
    "cm": 1e4,
    "m": 1e6,
    "meter": 1e6,
    "metre": 1e6,
}
_UM_PER_CM = 1e4


def _pixel_size_from_tiff(tif: TiffFile) -> float | None:
    page = tif.pages[0]
    tag = page.tags.get("XResolution")
    if tag is None:
        return None
    num, den = tag.value
    if num == 0:
        return None
    per_unit = den / num

    unit = (tif.imagej_metadata or {}).get("unit")
    if unit is not None:
        scale = _UM_PER_UNIT.get(str(unit).strip().lower())
        return None if scale is None else per_unit * scale

    res_unit = page.tags.get("ResolutionUnit")
    if res_unit is not None and int(res_unit.value) == int(tifffile.RESUNIT.CENTIMETER):
        return per_unit * _UM_PER_CM
    return None


def _to_label_dtype(data: np.ndarray, path: Path) -> np.ndarray:
    if np.issubdtype(data.dtype, np.integer) or data.dtype == np.bool_:
        return data
    if np.issubdtype(data.dtype, np.floating) and np.all(np.mod(data, 1) == 0):
        # ImageJ saves label maps as float32 when they exceed 16 bit.
        return data.astype(np.int32)
    raise ValueError(f"{path.name}: label image must hold integer ids, got dtype {data.dtype}")


def read_label_image(path: Path | str, pixel_size_um: float | None = None, name: str | None = None) -> LabelImage:
    """Read a 2D label TIFF.

    Args:
        path: TIFF file.
        pixel_size_um: Overrides whatever calibration the file carries.
        name: Display name; defaults to the file stem.
    """
    path = Path(path)
    with TiffFile(path) as tif:
        data = tif.asarray()
        file_px = _pixel_size_from_tiff(tif)

    data = _to_label_dtype(np.squeeze(data), path)
    px = pixel_size_um if pixel_size_um is not None else file_px
    if pixel_size_um is not None and file_px is not None and not np.isclose(pixel_size_um, file_px):
        logger.warning(f"{path.name}: overriding file calibration {file_px:.4f} µm with {pixel_size_um:.4f} µm")
    logger.debug(f"Read {path.name}: shape={data.shape} dtype={data.dtype} pixel_size={px}")
    return LabelImage(data, pixel_size_um=px, name=name or path.stem)


def write_tiff(path: Path | str, array: np.ndarray, pixel_size_um: float | None = None) -> Path:
    """Write a 2D raster, storing ``pixel_size_um`` as centimetre resolution tags."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    kwargs: dict = {"photometric": "minisblack"}
    if pixel_size_um is not None:
        px = require_calibration(pixel_size_um)
        kwargs["resolution"] = (_UM_PER_CM / px, _UM_PER_CM / px)
        kwargs["resolutionunit"] = tifffile.RESUNIT.CENTIMETER
    tifffile.imwrite(path, np.asarray(array), **kwargs)
    return path
