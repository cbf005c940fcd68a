"""File layout and localized error weighting of the KITTI road dataset."""

from __future__ import annotations

import enum


class KITTICategory(enum.Enum):
    """Road scene categories; each value is the file name prefix."""

    UM = "um_"
    UMM = "umm_"
    UU = "uu_"
    URBAN = "urban_"


class KITTIData:
    """Resolves image and ground truth paths below a KITTI root folder."""

    def __init__(self, source: str):
        self.training_image_folder = source + "training/image_2/"
        self.training_groundtruth_folder = source + "training/gt_image_2/"
        self.testing_image_folder = source + "testing/image_2/"

    def image(self, category: KITTICategory, number: int, testing: bool = False) -> str:
        """Path of an input image."""
        folder = self.testing_image_folder if testing else self.training_image_folder
        return folder + self.assemble_file_name(category, number)

    def road_groundtruth(self, category: KITTICategory, number: int) -> str:
        """Path of a road ground truth image."""
        return self.training_groundtruth_folder + self.assemble_file_name(
            category, number, "road_")

    def lane_groundtruth(self, category: KITTICategory, number: int) -> str:
        """Path of a lane ground truth image."""
        return self.training_groundtruth_folder + self.assemble_file_name(
            category, number, "lane_")

    @staticmethod
    def assemble_file_name(category: KITTICategory, number: int, infix: str = "") -> str:
        """File name such as ``um_road_000012.png``."""
        return f"{category.value}{infix}{str(number).rjust(6, '0')}.png"


def localized_error(x: int, y: int, w: int, h: int) -> float:
    """Error weight of pixel (x, y) in a w x h image, emphasising the road ahead."""

    def wsc(value: float) -> int:
        return int(float(value) * float(w) / 1226.0)

    def hsc(value: float) -> int:
        return int(float(value) * float(h) / 370.0)

    distance = wsc(abs(wsc(613) - x))
    xy_allowed = 0.0 if distance > 3 * (y - hsc(140)) else 1.0
    y_factor = 1.0 if y > hsc(190) else 0.0
    shape_weight = xy_allowed * y_factor

    if y <= hsc(170):
        quotient = 7.0
    else:
        quotient = max(1.0, min(7.0, hsc(200.0) / (float(y) - hsc(170.0))))

    error = 0.25 + (quotient ** 2 - 0.25) * shape_weight
    return 0.51 * error