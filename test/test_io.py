import numpy as np
import pytest
import tifffile

from gattools.io import read_label_image, write_tiff


def test_round_trip_keeps_calibration(tmp_path) -> None:
    labels = np.zeros((8, 9), dtype=np.uint16)
    labels[2:4, 2:4] = 5
    path = write_tiff(tmp_path / "nested" / "labels.tif", labels, 0.568)

    img = read_label_image(path)
    np.testing.assert_array_equal(img.data, labels)
    assert img.pixel_size_um == pytest.approx(0.568, rel=1e-5)
    assert img.name == "labels"
    assert img.n_labels == 5


def test_plain_tiff_is_uncalibrated(tmp_path) -> None:
    path = tmp_path / "plain.tif"
    tifffile.imwrite(path, np.zeros((4, 4), dtype=np.uint8))

    assert read_label_image(path).pixel_size_um is None
    assert read_label_image(path, pixel_size_um=0.75, name="hu").pixel_size_um == 0.75


@pytest.mark.parametrize(
    "unit, pixels_per_unit, expected_um",
    [
        ("um", 2.0, 0.5),
        ("micron", 2.0, 0.5),
        ("nm", 0.004, 0.25),
        ("mm", 1000.0, 1.0),
    ],
)
def test_imagej_calibration_in_microns(tmp_path, unit: str, pixels_per_unit: float, expected_um: float) -> None:
    path = tmp_path / "ij.tif"
    tifffile.imwrite(
        path,
        np.zeros((4, 4), dtype=np.uint16),
        imagej=True,
        resolution=(pixels_per_unit, pixels_per_unit),
        metadata={"unit": unit},
    )
    assert read_label_image(path).pixel_size_um == pytest.approx(expected_um, rel=1e-4)


def test_imagej_pixel_unit_is_uncalibrated(tmp_path) -> None:
    path = tmp_path / "ij.tif"
    tifffile.imwrite(
        path, np.zeros((4, 4), dtype=np.uint16), imagej=True, resolution=(1.0, 1.0), metadata={"unit": "pixel"}
    )
    assert read_label_image(path).pixel_size_um is None


def test_integral_float_labels_are_accepted(tmp_path) -> None:
    path = tmp_path / "float.tif"
    tifffile.imwrite(path, np.array([[0, 1], [2, 70000]], dtype=np.float32))

    img = read_label_image(path)
    assert img.data.dtype == np.int32
    assert img.n_labels == 70000


def test_fractional_labels_rejected(tmp_path) -> None:
    path = tmp_path / "prob.tif"
    tifffile.imwrite(path, np.array([[0.2, 1.0]], dtype=np.float32))

    with pytest.raises(ValueError, match="integer ids"):
        read_label_image(path)
