import itertools

import pytest

from segtensor.kitti import KITTICategory, KITTIData, localized_error


def test_assemble_file_name_pads_number():
    assert KITTIData.assemble_file_name(KITTICategory.UM, 12, "road_") == "um_road_000012.png"
    assert KITTIData.assemble_file_name(KITTICategory.URBAN, 7) == "urban_000007.png"


@pytest.mark.parametrize("category,prefix", [
    (KITTICategory.UM, "um_"),
    (KITTICategory.UMM, "umm_"),
    (KITTICategory.UU, "uu_"),
    (KITTICategory.URBAN, "urban_"),
])
def test_category_prefixes(category, prefix):
    assert KITTIData.assemble_file_name(category, 1).startswith(prefix)


def test_image_paths():
    data = KITTIData("/data/")
    assert data.image(KITTICategory.UMM, 3) == "/data/training/image_2/umm_000003.png"
    assert data.image(KITTICategory.UMM, 3, testing=True) == "/data/testing/image_2/umm_000003.png"


def test_groundtruth_paths():
    data = KITTIData("/data/")
    assert data.road_groundtruth(KITTICategory.UU, 42) == "/data/training/gt_image_2/uu_road_000042.png"
    assert data.lane_groundtruth(KITTICategory.UM, 42) == "/data/training/gt_image_2/um_lane_000042.png"


def test_error_above_horizon_is_base_weight():
    assert localized_error(613, 100, 1226, 370) == pytest.approx(0.1275)


def test_error_far_from_centre_is_base_weight():
    assert localized_error(0, 300, 1226, 370) == pytest.approx(localized_error(613, 100, 1226, 370))


def test_error_near_horizon_is_clamped_to_maximum():
    assert localized_error(613, 195, 1226, 370) == pytest.approx(24.99)


def test_error_scales_with_image_size():
    assert localized_error(1226, 390, 2452, 740) == pytest.approx(
        localized_error(613, 195, 1226, 370))


def test_error_stays_within_bounds():
    low = localized_error(613, 100, 1226, 370)
    high = localized_error(613, 195, 1226, 370)
    for x, y in itertools.product(range(0, 1226, 97), range(0, 370, 23)):
        assert low - 1e-9 <= localized_error(x, y, 1226, 370) <= high + 1e-9