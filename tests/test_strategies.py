import numpy as np
import pytest

from marker_pipeline.errors import ImageFormatError
from marker_pipeline.ip_types import Candidate, ImageFrame, TrackedObject
from marker_pipeline.strategies.convert_coords import NativeToTargetConvert
from marker_pipeline.strategies.emit_poses import FALLBACK_COLOR, PoseEmit, color_for
from marker_pipeline.strategies.estimate_normals import OrganizedNormalEstimator
from marker_pipeline.strategies.preprocess import Bgr8Frame
from marker_pipeline.strategies.refine_depth import DepthRefine
from marker_pipeline.strategies.select_best import BestCandidateSelect
from marker_pipeline.strategies.track_continuity import ContinuityTrack, TrackState, state_of
from marker_pipeline.transforms import rvec_tvec_to_matrix

from conftest import FakeDetector, make_cloud, make_frame


def _cand(mid, cf, pos=(100.0, 100.0)):
    return Candidate(mid, pos, cf)


# --- selection ---

def test_select_picks_highest_confidence():
    obj = TrackedObject(3, "m3", 80.0)
    low, high = _cand(3, 0.4), _cand(3, 0.9)
    matches = BestCandidateSelect().select([low, high, _cand(3, 0.5)], [obj])
    assert matches == [(0, obj, high)]


def test_select_tie_keeps_first_seen():
    obj = TrackedObject(3, "m3", 80.0)
    first, second = _cand(3, 0.7), _cand(3, 0.7)
    [(_, _, chosen)] = BestCandidateSelect().select([first, second], [obj])
    assert chosen is first


def test_select_marks_unmatched_not_visible():
    seen = TrackedObject(1, "m1", 80.0, visible=True)
    missing = TrackedObject(2, "m2", 80.0, visible=True)
    matches = BestCandidateSelect().select([_cand(1, 0.5), _cand(99, 1.0)], [seen, missing])
    assert [m[1] for m in matches] == [seen]
    assert missing.visible is False
    # selection alone does not flip matched objects
    assert seen.visible is True


# --- tracking ---

def test_tracker_fresh_then_continuity():
    det = FakeDetector(trans=rvec_tvec_to_matrix([0, 0, 0], [1.0, 2.0, 3.0]))
    trk = ContinuityTrack(det)
    obj = TrackedObject(4, "m4", 80.0)
    assert state_of(obj) is TrackState.UNSEEN

    trk.update(obj, _cand(4, 1.0))
    assert det.fresh_calls == [4] and det.cont_calls == []
    assert state_of(obj) is TrackState.VISIBLE

    trk.update(obj, _cand(4, 1.0))
    assert det.cont_calls == [4]
    assert np.array_equal(det.prev_seen[0], det.trans)


def test_tracker_solves_fresh_after_losing_object():
    det = FakeDetector()
    trk = ContinuityTrack(det)
    obj = TrackedObject(4, "m4", 80.0)
    trk.update(obj, _cand(4, 1.0))
    obj.visible = False
    trk.update(obj, _cand(4, 1.0))
    assert det.fresh_calls == [4, 4]
    assert det.cont_calls == []


# --- conversion ---

def test_convert_identity():
    pos, quat = NativeToTargetConvert(0.001).convert(np.eye(4))
    assert tuple(pos) == (0.0, 0.0, 0.0)
    assert tuple(quat) == (0.0, 0.0, 0.0, 1.0)


def test_convert_scales_translation_and_flips_vector_part():
    T = rvec_tvec_to_matrix([0.0, 0.0, np.pi / 2], [100.0, -20.0, 500.0])
    pos, quat = NativeToTargetConvert(0.001).convert(T)
    assert pos == pytest.approx([0.1, -0.02, 0.5])
    s = np.sqrt(0.5)
    assert quat == pytest.approx([0.0, 0.0, -s, s])


def test_convert_is_reproducible():
    T = rvec_tvec_to_matrix([0.3, -0.2, 0.1], [12.5, 7.0, 640.0])
    conv = NativeToTargetConvert(0.01)
    a = conv.convert(T)
    b = conv.convert(T.copy())
    assert np.array_equal(a[0], b[0]) and np.array_equal(a[1], b[1])


# --- depth refinement ---

def test_refine_without_cloud_returns_inputs():
    ref = DepthRefine()
    pos, quat = np.array([0.1, 0.2, 0.3]), np.array([0.0, 0.0, 0.0, 1.0])
    out_pos, out_quat, refined = ref.refine(_cand(1, 1.0), pos, quat, 640)
    assert out_pos is pos and out_quat is quat
    assert refined is False


def test_refine_cell_uses_integer_downsampling():
    assert DepthRefine.cell_for(_cand(1, 1.0, (100.7, 51.2)), 640, 320) == (50, 25)
    assert DepthRefine.cell_for(_cand(1, 1.0, (100.7, 51.2)), 640, 640) == (100, 51)
    # cloud wider than the image: factor clamps to 1
    assert DepthRefine.cell_for(_cand(1, 1.0, (10.0, 5.0)), 320, 640) == (10, 5)


def test_refine_overrides_position_and_keeps_aligned_orientation():
    ref = DepthRefine()
    ref.swap_cloud(make_cloud(point=(0.1, 0.2, 1.5), normal=(0.0, 0.0, 1.0)))
    quat = np.array([0.0, 0.0, 0.0, 1.0])
    pos, out_quat, refined = ref.refine(_cand(1, 1.0), np.zeros(3), quat, 640)
    assert refined is True
    assert tuple(pos) == (0.1, 0.2, 1.5)
    assert np.array_equal(out_quat, quat)


def test_refine_skips_nan_sample():
    ref = DepthRefine()
    cloud = make_cloud()
    cloud.points[50, 50] = [np.nan, 0.0, 1.0]
    ref.swap_cloud(cloud)
    pos = np.array([1.0, 2.0, 3.0])
    out_pos, _, refined = ref.refine(_cand(1, 1.0, (100.0, 100.0)), pos, np.array([0, 0, 0, 1.0]), 640)
    assert refined is False
    assert out_pos is pos


def test_refine_skips_out_of_range_cell():
    ref = DepthRefine()
    ref.swap_cloud(make_cloud(width=320, height=240))
    pos = np.array([1.0, 2.0, 3.0])
    _, _, refined = ref.refine(_cand(1, 1.0, (639.0, 600.0)), pos, np.array([0, 0, 0, 1.0]), 640)
    assert refined is False


def test_refine_nan_normal_overrides_position_only():
    ref = DepthRefine()
    ref.swap_cloud(make_cloud(point=(0.0, 0.0, 2.0), normal=(np.nan, np.nan, np.nan)))
    quat = np.array([0.0, 0.0, 0.38268343, 0.92387953])
    pos, out_quat, refined = ref.refine(_cand(1, 1.0), np.zeros(3), quat, 640)
    assert refined is True
    assert tuple(pos) == (0.0, 0.0, 2.0)
    assert out_quat is quat


def test_refine_tilted_normal_rotates_orientation():
    ref = DepthRefine()
    ref.swap_cloud(make_cloud(normal=(np.sin(0.2), 0.0, np.cos(0.2))))
    _, out_quat, _ = ref.refine(_cand(1, 1.0), np.zeros(3), np.array([0.0, 0.0, 0.0, 1.0]), 640)
    assert not np.isnan(out_quat).any()
    assert out_quat[1] > 0.0
    assert np.linalg.norm(out_quat) == pytest.approx(1.0)


def test_swap_cloud_is_last_write_wins():
    ref = DepthRefine()
    first, second = make_cloud(stamp=1.0), make_cloud(stamp=2.0)
    assert ref.swap_cloud(first) is None
    assert ref.swap_cloud(second) is first
    assert ref.cloud is second


# --- emission ---

def test_emit_builds_record_transform_and_box():
    emit = PoseEmit(unit_scale=0.001)
    frame = make_frame(idx=7, stamp=12.5)
    obj = TrackedObject(5, "marker_5", 80.0)
    result = emit.begin(frame)
    rec = emit.emit(result, frame, 0, obj, _cand(5, 0.8), np.array([0.0, 0.0, 1.0]), np.array([0.0, 0.0, 0.0, 1.0]))

    assert result.records == [rec]
    assert rec.id == 5 and rec.frame_idx == 7 and rec.stamp == 12.5
    assert rec.frame_id == "camera"
    assert rec.confidence == 0.8

    [tf] = result.transforms
    assert tf.child_frame_id == "marker_5" and tf.frame_id == "camera"

    [box] = result.visual_markers
    assert box.scale == pytest.approx((0.08, 0.08, 0.04))
    assert box.position == pytest.approx((0.0, 0.0, 1.02))
    assert box.color == (0.0, 0.0, 1.0, 1.0)
    assert box.shape == "CUBE" and box.ns == "basic_shapes" and box.lifetime == 0.0


def test_emit_respects_publish_flags():
    emit = PoseEmit(publish_tf=False, publish_visual_markers=False)
    frame = make_frame()
    result = emit.begin(frame)
    emit.emit(result, frame, 0, TrackedObject(1, "m", 80.0), _cand(1, 1.0), np.zeros(3), np.array([0, 0, 0, 1.0]))
    assert len(result.records) == 1
    assert result.transforms == [] and result.visual_markers == []


def test_palette_by_object_index():
    assert color_for(0) == (0.0, 0.0, 1.0, 1.0)
    assert color_for(1) == (1.0, 0.0, 0.0, 1.0)
    assert color_for(2) == FALLBACK_COLOR
    assert color_for(17) == FALLBACK_COLOR


# --- preprocessing and normals ---

def test_bgr8_passthrough():
    frame = make_frame()
    assert Bgr8Frame().apply(frame) is frame


def test_rgb8_is_converted():
    img = np.zeros((2, 2, 3), dtype=np.uint8)
    img[..., 0] = 255  # red in RGB
    out = Bgr8Frame().apply(ImageFrame(1, 0.0, "camera", img, "rgb8"))
    assert out.encoding == "bgr8"
    assert out.image[0, 0].tolist() == [0, 0, 255]


def test_mono8_is_expanded():
    out = Bgr8Frame().apply(make_frame(encoding="mono8", width=4, height=3))
    assert out.image.shape == (3, 4, 3)


def test_unknown_encoding_raises():
    with pytest.raises(ImageFormatError):
        Bgr8Frame().apply(ImageFrame(1, 0.0, "camera", np.zeros((2, 2)), "32FC1"))


def test_sixteen_bit_pixels_are_rejected():
    img = np.zeros((4, 4, 3), dtype=np.uint16)
    with pytest.raises(ImageFormatError):
        Bgr8Frame().apply(ImageFrame(1, 0.0, "camera", img, "bgr8"))


def test_channel_count_must_match_encoding():
    with pytest.raises(ImageFormatError):
        Bgr8Frame().apply(ImageFrame(1, 0.0, "camera", np.zeros((4, 4), np.uint8), "bgr8"))
    with pytest.raises(ImageFormatError):
        Bgr8Frame().apply(ImageFrame(1, 0.0, "camera", np.zeros((4, 4, 3), np.uint8), "rgba8"))


def test_normals_of_flat_plane_face_sensor():
    points = make_cloud(point=(0.0, 0.0, 1.0), normal=None, width=8, height=6).points.copy()
    gx, gy = np.meshgrid(np.arange(8) * 0.01, np.arange(6) * 0.01)
    points[..., 0], points[..., 1] = gx, gy
    normals = OrganizedNormalEstimator().compute(points)
    assert np.allclose(normals[2:4, 2:6], [0.0, 0.0, -1.0])


def test_normals_nan_where_depth_missing():
    points = make_cloud(point=(0.0, 0.0, 1.0), normal=None, width=8, height=6).points.copy()
    gx, gy = np.meshgrid(np.arange(8) * 0.01, np.arange(6) * 0.01)
    points[..., 0], points[..., 1] = gx, gy
    points[3, 3] = np.nan
    normals = OrganizedNormalEstimator().compute(points)
    assert np.isnan(normals[3, 3]).all()
    # neighbours of a hole are fitted from the remaining points
    assert np.allclose(normals[3, 4], [0.0, 0.0, -1.0])


def test_normals_all_nan_for_too_few_points():
    points = np.full((4, 4, 3), np.nan)
    points[0, 0] = (0.0, 0.0, 1.0)
    points[0, 1] = (0.01, 0.0, 1.0)
    assert np.isnan(OrganizedNormalEstimator().compute(points)).all()


def _angle_to(normals, expected):
    n = normals.reshape(-1, 3)
    cos = np.clip(np.abs(n @ np.asarray(expected)), 0.0, 1.0)
    return np.degrees(np.arccos(cos))


def test_normals_on_noisy_plane_stay_close():
    rng = np.random.default_rng(7)
    h, w, spacing = 120, 160, 0.0034
    gx, gy = np.meshgrid((np.arange(w) - w / 2) * spacing, (np.arange(h) - h / 2) * spacing)
    gz = 1.0 + rng.normal(0.0, 0.001, size=gx.shape)
    points = np.dstack([gx, gy, gz])

    normals = OrganizedNormalEstimator().compute(points)

    errors = _angle_to(normals, (0.0, 0.0, 1.0))
    assert np.median(errors) < 6.0
    assert np.percentile(errors, 90) < 10.0
    assert (normals[..., 2] < 0).all()


def test_normals_follow_tilted_plane():
    h, w, spacing = 40, 50, 0.005
    gx, gy = np.meshgrid(np.arange(w) * spacing, np.arange(h) * spacing)
    gz = 1.0 + 0.5 * gx
    points = np.dstack([gx, gy, gz])

    normals = OrganizedNormalEstimator().compute(points)

    expected = np.array([0.5, 0.0, -1.0]) / np.sqrt(1.25)
    assert np.allclose(normals.reshape(-1, 3), expected, atol=1e-6)
    assert (np.einsum("ijk,ijk->ij", normals, points) <= 0).all()
