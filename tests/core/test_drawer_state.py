import numpy as np

from cashguard.core.regions.drawer import DrawerConfig, DrawerStateEstimator, mean_abs_diff
from cashguard.core.types import DrawerState, Roi

DEVICE = Roi(0.25, 0.25, 0.5, 0.25, name="device")
ZONE = Roi(0.25, 0.5, 0.5, 0.25, name="drawer")


def frame(zone_value=0):
    img = np.zeros((240, 320), dtype=np.uint8)
    img[120:180, 80:240] = zone_value
    return img


def test_unknown_without_device():
    est = DrawerStateEstimator()
    assert est.update(frame(), None, None, 0.0) is DrawerState.UNKNOWN


def test_cold_start_assumes_closed():
    est = DrawerStateEstimator()
    assert est.update(frame(), DEVICE, ZONE, 0.0) is DrawerState.CLOSED
    assert est.baseline is not None
    assert est.baseline.shape == (32, 64)


def test_open_after_floor_frames_then_closes_after_decay():
    est = DrawerStateEstimator(DrawerConfig(open_floor=3))
    est.update(frame(0), DEVICE, ZONE, 0.0)
    states = [est.update(frame(200), DEVICE, ZONE, 0.1 * i) for i in range(1, 4)]
    assert states == [DrawerState.CLOSED, DrawerState.CLOSED, DrawerState.OPEN]
    states = [est.update(frame(0), DEVICE, ZONE, 1.0 + 0.1 * i) for i in range(3)]
    assert states == [DrawerState.OPEN, DrawerState.OPEN, DrawerState.CLOSED]


def test_single_noisy_frame_does_not_open():
    est = DrawerStateEstimator()
    est.update(frame(0), DEVICE, ZONE, 0.0)
    assert est.update(frame(200), DEVICE, ZONE, 0.1) is DrawerState.CLOSED
    assert est.update(frame(0), DEVICE, ZONE, 0.2) is DrawerState.CLOSED
    assert est.open_evidence == 0


def test_open_evidence_is_bounded():
    est = DrawerStateEstimator(DrawerConfig(open_max=5))
    est.update(frame(0), DEVICE, ZONE, 0.0)
    for i in range(20):
        est.update(frame(200), DEVICE, ZONE, 0.1 * i)
    assert est.open_evidence == 5


def test_baseline_is_never_learned_while_open():
    est = DrawerStateEstimator(DrawerConfig(stable_closed_frames=1, refresh_interval_s=0.0))
    est.update(frame(0), DEVICE, ZONE, 0.0)
    baseline = est.baseline.copy()
    for i in range(10):
        est.update(frame(200), DEVICE, ZONE, float(i + 1))
    assert est.state is DrawerState.OPEN
    assert np.array_equal(est.baseline, baseline)


def test_baseline_refreshes_after_stable_closed_stretch():
    est = DrawerStateEstimator(DrawerConfig(stable_closed_frames=3, refresh_interval_s=5.0))
    est.update(frame(0), DEVICE, ZONE, 0.0)
    for t in range(1, 5):
        est.update(frame(5), DEVICE, ZONE, float(t))
    assert est.baseline_at == 0.0
    est.update(frame(5), DEVICE, ZONE, 5.0)
    assert est.baseline_at == 5.0
    assert est.closed_streak == 0


def test_device_size_change_discards_baseline():
    est = DrawerStateEstimator(DrawerConfig(open_floor=1))
    est.update(frame(0), DEVICE, ZONE, 0.0)
    bigger = Roi(0.2, 0.2, 0.6, 0.3, name="device")
    # A fresh baseline is taken from the current (bright) frame: no spurious open.
    assert est.update(frame(200), bigger, ZONE, 1.0) is DrawerState.CLOSED
    assert est.baseline_device == bigger
    assert est.baseline_at == 1.0


def test_reset_clears_everything():
    est = DrawerStateEstimator()
    est.update(frame(0), DEVICE, ZONE, 0.0)
    est.reset()
    assert est.state is DrawerState.UNKNOWN
    assert est.baseline is None
    assert est.open_evidence == 0


def test_mean_abs_diff_subsampling():
    a = np.zeros((4, 4), dtype=np.float32)
    b = np.full((4, 4), 10.0, dtype=np.float32)
    assert mean_abs_diff(a, b) == 10.0
    assert mean_abs_diff(a, b, step=2) == 10.0
