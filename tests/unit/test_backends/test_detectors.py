"""
Unit tests for the grid and named-tensor face detectors.

Tests cover:
- Output parsing for both tensor layouts
- Shared postprocessing (confidence, mapping, clamping, size filter, NMS)
- End-to-end detection through a mocked ONNX session
- Failure containment
"""

import logging

import numpy as np
import pytest

from artface.backends.backend_exceptions import BackendNotInitializedError, InferenceError
from artface.backends.base import build_detections
from artface.backends.grid_detector import GridFaceDetector, parse_grid_output
from artface.backends.named_detector import NamedFaceDetector, parse_named_outputs
from artface.models import BoundingBox
from artface.processing.preprocess import ResizeMeta
from artface.processing.quality import GRID_POLICY, NAMED_POLICY

IDENTITY_META = ResizeMeta(orig_size=(200, 200), scale=1.0, pad_x=0, pad_y=0)


def _grid_rows(rows, channels=6, total=12):
    """Pad candidate rows with empty ones so N > C, as real grid outputs are."""
    out = np.zeros((total, channels), dtype=np.float32)
    for i, row in enumerate(rows):
        out[i, : len(row)] = row
    return out


class TestParseGridOutput:
    """Test single-tensor output decoding."""

    def test_rows_layout(self):
        arr = _grid_rows([[100, 80, 40, 20, 0.9, 0]])
        boxes, scores, landmarks = parse_grid_output(arr[np.newaxis])

        np.testing.assert_allclose(boxes[0], [80, 70, 120, 90])
        assert scores[0] == pytest.approx(0.9)
        assert landmarks is None

    def test_channels_first_layout_matches(self):
        arr = _grid_rows([[100, 80, 40, 20, 0.9, 0], [10, 10, 4, 4, 0.3, 0]])
        rows = parse_grid_output(arr[np.newaxis])
        cols = parse_grid_output(arr.T[np.newaxis])

        np.testing.assert_allclose(rows[0], cols[0])
        np.testing.assert_allclose(rows[1], cols[1])

    def test_keypoints_when_enough_channels(self):
        kps = []
        for k in range(5):
            kps += [10.0 * k, 20.0 * k, 1.0]
        arr = _grid_rows([[100, 100, 50, 50, 0.8] + kps], channels=20, total=30)
        _, _, landmarks = parse_grid_output(arr[np.newaxis])

        assert landmarks.shape == (30, 5, 2)
        np.testing.assert_allclose(landmarks[0, 3], [30.0, 60.0])

    def test_too_few_channels(self):
        with pytest.raises(InferenceError):
            parse_grid_output(np.zeros((1, 10, 4), dtype=np.float32))


class TestParseNamedOutputs:
    """Test named-tensor output decoding."""

    def test_two_channel_scores_use_positive_class(self):
        outputs = {
            "score_8": np.array([[[0.9, 0.1], [0.2, 0.8]]], dtype=np.float32),
            "bbox_8": np.array([[[0, 0, 10, 10], [5, 5, 20, 20]]], dtype=np.float32),
        }
        boxes, scores, landmarks = parse_named_outputs(outputs)

        assert boxes.shape == (2, 4)
        np.testing.assert_allclose(scores, [0.1, 0.8])
        assert landmarks is None

    def test_landmarks_by_name(self):
        outputs = {
            "conf": np.array([0.9, 0.7], dtype=np.float32),
            "boxes": np.zeros((2, 4), dtype=np.float32),
            "kps": np.arange(20, dtype=np.float32),
        }
        _, scores, landmarks = parse_named_outputs(outputs)

        np.testing.assert_allclose(scores, [0.9, 0.7])
        assert landmarks.shape == (2, 5, 2)
        np.testing.assert_allclose(landmarks[1, 0], [10.0, 11.0])

    def test_mismatched_landmarks_ignored(self):
        outputs = {
            "scores": np.array([0.9], dtype=np.float32),
            "bbox": np.zeros((1, 4), dtype=np.float32),
            "landmark": np.zeros(6, dtype=np.float32),
        }
        _, _, landmarks = parse_named_outputs(outputs)
        assert landmarks is None

    def test_missing_outputs(self):
        with pytest.raises(InferenceError):
            parse_named_outputs({"landmarks": np.zeros(10)})


class TestBuildDetections:
    """Test the shared postprocessing."""

    def test_confidence_filter(self):
        boxes = np.array([[10, 10, 60, 60], [100, 100, 150, 150]], dtype=np.float32)
        dets = build_detections(boxes, np.array([0.9, 0.3]), None, IDENTITY_META, 0.5)
        assert len(dets) == 1
        assert dets[0].box == BoundingBox(10, 10, 50, 50)

    def test_tiny_face_dropped(self):
        boxes = np.array([[10, 10, 15, 15], [50, 50, 100, 100]], dtype=np.float32)
        dets = build_detections(boxes, np.array([0.99, 0.6]), None, IDENTITY_META, min_face_size=10)
        assert [d.box.width for d in dets] == [50]

    def test_clamped_to_image(self):
        boxes = np.array([[-20, -20, 50, 50], [150, 150, 260, 260]], dtype=np.float32)
        dets = build_detections(boxes, np.array([0.9, 0.8]), None, IDENTITY_META)
        assert dets[0].box == BoundingBox(0, 0, 50, 50)
        assert dets[1].box == BoundingBox(150, 150, 50, 50)

    def test_maps_back_through_letterbox(self):
        meta = ResizeMeta(orig_size=(100, 200), scale=3.2, pad_x=0, pad_y=160)
        boxes = np.array([[320, 320, 480, 480]], dtype=np.float32)
        landmarks = np.full((1, 5, 2), 320.0, dtype=np.float32)
        dets = build_detections(boxes, np.array([0.9]), landmarks, meta)

        assert dets[0].box == BoundingBox(100, 50, 50, 50)
        assert dets[0].landmarks[0] == pytest.approx((100.0, 50.0))

    def test_nms_applied(self):
        boxes = np.array([[10, 10, 60, 60], [12, 12, 62, 62]], dtype=np.float32)
        dets = build_detections(boxes, np.array([0.8, 0.9]), None, IDENTITY_META, nms_threshold=0.4)
        assert len(dets) == 1
        assert dets[0].confidence == pytest.approx(0.9)

    def test_empty(self):
        assert build_detections(np.zeros((0, 4)), np.zeros(0), None, IDENTITY_META) == []


class TestGridFaceDetector:
    """End-to-end grid detection with a mocked session."""

    @pytest.fixture
    def detector(self, model_file, mock_onnx):
        def output_fn(session, tensor):
            # 200x200 image into 640 -> scale 3.2, no padding
            return {
                "output0": _grid_rows(
                    [
                        [320, 320, 320, 320, 0.9, 0],  # 100px face
                        [330, 330, 320, 320, 0.8, 0],  # duplicate
                        [50, 50, 16, 16, 0.95, 0],  # 5px face
                    ],
                    total=50,
                ).T[np.newaxis]
            }

        mock_onnx(input_shape=[1, 3, 640, 640], output_fn=output_fn)
        detector = GridFaceDetector(model_file, device="cpu")
        detector.initialize()
        yield detector
        detector.close()

    def test_detect(self, detector, sample_image):
        faces = detector.detect(sample_image, source="sample.png")

        assert len(faces) == 1
        assert faces[0].confidence == pytest.approx(0.9)
        assert faces[0].box == BoundingBox(50, 50, 100, 100)
        assert faces[0].landmarks is None

    def test_input_tensor(self, detector, sample_image):
        detector.detect(sample_image)
        tensor = detector._session._session.calls[-1]
        assert tensor.shape == (1, 3, 640, 640)
        assert tensor.dtype == np.float32
        assert 0.0 <= tensor.min() and tensor.max() <= 1.0

    def test_runtime_info(self, detector):
        info = detector.get_runtime_info()
        assert info.kind == "detector"
        assert info.model_name == "yolo11"
        assert info.device == "cpu"
        assert info.extra["scoring_policy"] == GRID_POLICY.name

    def test_inference_failure_returns_empty(self, model_file, mock_onnx, sample_image, caplog):
        def output_fn(session, tensor):
            if tensor.any():
                raise RuntimeError("bad kernel")
            return {"output0": np.zeros((1, 6, 10), dtype=np.float32)}

        mock_onnx(output_fn=output_fn)
        detector = GridFaceDetector(model_file, device="cpu")
        detector.initialize()

        with caplog.at_level(logging.WARNING):
            assert detector.detect(sample_image, source="broken.png") == []
        assert "broken.png" in caplog.text

    def test_detect_before_initialize(self, model_file, sample_image):
        detector = GridFaceDetector(model_file, device="cpu")
        with pytest.raises(BackendNotInitializedError):
            detector.detect(sample_image)

    def test_detect_after_close(self, detector, sample_image):
        detector.close()
        assert not detector.is_initialized()
        with pytest.raises(BackendNotInitializedError):
            detector.detect(sample_image)


class TestNamedFaceDetector:
    """End-to-end named-tensor detection with a mocked session."""

    @pytest.fixture
    def detector(self, model_file, mock_onnx):
        def output_fn(session, tensor):
            # 200x200 image into 640, top-left placement -> scale 3.2
            return {
                "score_8": np.array([[0.9], [0.2]], dtype=np.float32),
                "bbox_8": np.array([[160, 160, 480, 480], [0, 0, 64, 64]], dtype=np.float32),
                "kps_8": np.tile(np.array([320.0, 320.0], dtype=np.float32), (2, 5)),
            }

        mock_onnx(input_shape=[1, 3, 640, 640], output_fn=output_fn)
        detector = NamedFaceDetector(model_file, device="cpu", confidence_threshold=0.5)
        detector.initialize()
        yield detector
        detector.close()

    def test_detect(self, detector, sample_image):
        faces = detector.detect(sample_image)

        assert len(faces) == 1
        assert faces[0].box == BoundingBox(50, 50, 100, 100)
        assert len(faces[0].landmarks) == 5
        assert faces[0].landmarks[2] == pytest.approx((100.0, 100.0))

    def test_bgr_normalization(self, detector):
        image = np.zeros((640, 640, 3), dtype=np.uint8)
        image[..., 2] = 255  # blue
        detector.detect(image)
        tensor = detector._session._session.calls[-1]

        assert tensor[0, 0, 0, 0] == pytest.approx((255 - 127.5) / 128.0)
        assert tensor[0, 2, 0, 0] == pytest.approx(-127.5 / 128.0)

    def test_scoring_policy(self, detector):
        assert detector.scoring_policy is NAMED_POLICY
        assert detector.model_name == "retinaface"
