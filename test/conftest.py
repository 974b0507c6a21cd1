import random
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pytest

from gattools.io import write_tiff


@pytest.fixture(autouse=True)
def _seed_all() -> None:
    """Deterministic RNG across tests to reduce flakiness."""
    random.seed(0)
    np.random.seed(0)


def square(labels: np.ndarray, row: int, col: int, value: int, size: int = 3) -> None:
    labels[row : row + size, col : col + size] = value


@dataclass(slots=True)
class GutField:
    """Synthetic field of view written as calibrated label TIFFs (1 µm/px).

    Hu cells are 3x3 squares. Cells 1-3 sit in one row with four background
    pixels between neighbours; cells 4-5 form a second, distant pair.
    nNOS covers Hu 1, 2 and 4. ChAT covers Hu 2 and 3 and a single pixel of Hu 5.
    """

    root: Path
    hu: np.ndarray
    nnos: np.ndarray
    chat: np.ndarray
    hu_path: Path
    nnos_path: Path
    chat_path: Path
    pixel_size_um: float = 1.0


HU_ORIGINS = {1: (5, 5), 2: (5, 12), 3: (5, 19), 4: (25, 40), 5: (25, 47)}


@pytest.fixture
def gut_field(tmp_path: Path) -> GutField:
    shape = (40, 60)
    hu = np.zeros(shape, dtype=np.uint16)
    for label_id, (r, c) in HU_ORIGINS.items():
        square(hu, r, c, label_id)

    nnos = np.zeros(shape, dtype=np.uint16)
    for new_id, hu_id in enumerate((1, 2, 4), start=1):
        square(nnos, *HU_ORIGINS[hu_id], new_id)

    chat = np.zeros(shape, dtype=np.uint16)
    for new_id, hu_id in enumerate((2, 3), start=1):
        square(chat, *HU_ORIGINS[hu_id], new_id)
    r5, c5 = HU_ORIGINS[5]
    chat[r5, c5] = 3

    root = tmp_path / "field"
    return GutField(
        root=root,
        hu=hu,
        nnos=nnos,
        chat=chat,
        hu_path=write_tiff(root / "hu.tif", hu, 1.0),
        nnos_path=write_tiff(root / "nnos.tif", nnos, 1.0),
        chat_path=write_tiff(root / "chat.tif", chat, 1.0),
    )
