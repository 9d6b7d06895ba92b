"""
Tests for the Detector orchestrator.
"""

import logging
import math
import pytest
import numpy as np

from detection.detector import (
    ANNOTATE_COLOR,
    Detector,
    create_detector_from_config,
    load_pipeline_class,
)
from localization.homography import GroundPlaneMapper, Quad
from models.config import Config
from models.detection import BoxObject
from pipeline.base import Pipeline, StagedPipeline
from scheduler.base import VisionScheduler


class MockScheduler(VisionScheduler):
    """Records calls; detections are published by the test."""

    def __init__(self, processor):
        self.processor = processor
        self.enabled = False
        self.enable_calls = []
        self.interval_ms = 0
        self.video_out = (-1, False)
        self.perf_report = False
        self.snapshot = None

    def set_task_enabled(self, enabled):
        self.enable_calls.append(enabled)
        self.enabled = enabled
        if not enabled:
            self.snapshot = None

    def is_task_enabled(self):
        return self.enabled

    def set_processing_interval(self, interval_ms):
        self.interval_ms = interval_ms

    def get_processing_interval(self):
        return self.interval_ms

    def set_video_out_enabled(self, step, annotate):
        self.video_out = (step, annotate)

    def get_detected_objects(self):
        return self.snapshot

    def set_perf_report_enabled(self, enabled):
        self.perf_report = enabled

    def run_cycle(self, frame):
        """Simulate one scheduled cycle."""
        self.snapshot = self.processor.process_frame(frame)
        return self.snapshot


class MockPipeline(Pipeline):
    """Pipeline returning a fixed list of objects."""

    def __init__(self, objects=()):
        self.objects = tuple(objects)
        self.reset_count = 0
        self.process_count = 0
        self._result = ()
        self.last_frame = None

    def reset(self):
        self.reset_count += 1
        self._result = ()

    def process(self, frame):
        self.process_count += 1
        self.last_frame = frame
        self._result = self.objects

    def get_detected_objects(self):
        return self._result

    def get_intermediate_output(self, step):
        if step == 0:
            return self.last_frame
        return None


# Camera 640x480; image bottom row is the camera's floor line, 1 world unit = 10 px
AFFINE_MAPPER = GroundPlaneMapper(
    Quad.from_rect(0, 0, 640, 480),
    Quad.from_list([[-32, 48], [32, 48], [-32, 0], [32, 0]]),
)

FRAME = np.zeros((480, 640, 3), dtype=np.uint8)


def _make_detector(mapper=None):
    return Detector("test", 640, 480, scheduler_factory=MockScheduler, mapper=mapper)


class TestPipelineLifecycle:
    def test_initial_state(self):
        detector = _make_detector()
        assert detector.get_pipeline() is None
        assert detector.is_enabled() is False
        assert detector.scheduler.processor is detector

    def test_set_pipeline_resets_and_enables(self):
        detector = _make_detector()
        pipeline = MockPipeline()
        
        detector.set_pipeline(pipeline)
        
        assert detector.get_pipeline() is pipeline
        assert pipeline.reset_count == 1
        assert detector.is_enabled() is True
        assert detector.scheduler.enable_calls == [True]

    def test_same_pipeline_twice_resets_once(self):
        detector = _make_detector()
        pipeline = MockPipeline()
        
        detector.set_pipeline(pipeline)
        detector.set_pipeline(pipeline)
        
        assert pipeline.reset_count == 1
        assert detector.scheduler.enable_calls == [True]

    def test_none_disables(self):
        detector = _make_detector()
        detector.set_pipeline(MockPipeline())
        detector.set_pipeline(None)
        
        assert detector.get_pipeline() is None
        assert detector.is_enabled() is False
        assert detector.scheduler.enable_calls == [True, False]

    def test_none_when_already_disabled_is_noop(self):
        detector = _make_detector()
        detector.set_pipeline(None)
        assert detector.scheduler.enable_calls == []

    def test_swap_while_enabled_resets_new_pipeline(self):
        detector = _make_detector()
        first, second = MockPipeline(), MockPipeline()
        
        detector.set_pipeline(first)
        detector.set_pipeline(second)
        
        assert first.reset_count == 1
        assert second.reset_count == 1
        # Already enabled: no second edge
        assert detector.scheduler.enable_calls == [True]

    def test_enable_disable_enable_resets_each_installation(self):
        detector = _make_detector()
        first, second = MockPipeline(), MockPipeline()
        
        detector.set_pipeline(first)
        detector.set_pipeline(None)
        detector.set_pipeline(second)
        
        assert first.reset_count == 1
        assert second.reset_count == 1
        assert detector.scheduler.enable_calls == [True, False, True]

    def test_reinstalling_after_disable_resets_again(self):
        detector = _make_detector()
        pipeline = MockPipeline()
        
        detector.set_pipeline(pipeline)
        detector.set_pipeline(None)
        detector.set_pipeline(pipeline)
        
        assert pipeline.reset_count == 2


    def test_failed_enable_rolls_back_and_can_retry(self):
        class FlakyScheduler(MockScheduler):
            """First enable fails like a camera that is not plugged in yet."""

            def __init__(self, processor):
                super().__init__(processor)
                self.failures = 1

            def set_task_enabled(self, enabled):
                if enabled and self.failures:
                    self.failures -= 1
                    raise RuntimeError("camera not available")
                super().set_task_enabled(enabled)

        detector = Detector("test", 640, 480, scheduler_factory=FlakyScheduler)
        pipeline = MockPipeline()

        with pytest.raises(RuntimeError, match="camera not available"):
            detector.set_pipeline(pipeline)
        assert detector.get_pipeline() is None
        assert detector.is_enabled() is False

        detector.set_pipeline(pipeline)
        assert detector.get_pipeline() is pipeline
        assert detector.is_enabled() is True
        assert pipeline.reset_count == 2


class TestSchedulerPassThrough:
    def test_processing_interval(self):
        detector = _make_detector()
        detector.set_processing_interval(50)
        assert detector.get_processing_interval() == 50
        detector.set_processing_interval(0)
        assert detector.get_processing_interval() == 0

    def test_negative_interval_rejected(self):
        detector = _make_detector()
        with pytest.raises(ValueError):
            detector.set_processing_interval(-1)

    def test_video_out(self):
        detector = _make_detector()
        detector.set_video_out_enabled(2, True)
        assert detector.scheduler.video_out == (2, True)

    def test_perf_report(self):
        detector = _make_detector()
        detector.set_perf_report_enabled(True)
        assert detector.scheduler.perf_report is True


class TestProcessingAdapter:
    def test_process_frame_delegates(self):
        detector = _make_detector()
        obj = BoxObject.from_xywh(0, 0, 10, 10)
        pipeline = MockPipeline([obj])
        detector.set_pipeline(pipeline)
        
        result = detector.process_frame(FRAME)
        
        assert result == (obj,)
        assert pipeline.process_count == 1
        assert pipeline.last_frame is FRAME

    def test_process_frame_without_pipeline(self):
        detector = _make_detector()
        assert detector.process_frame(FRAME) == ()

    def test_pipeline_returning_list_is_snapshotted(self):
        class ListPipeline(MockPipeline):
            def get_detected_objects(self):
                return list(self._result)

        detector = _make_detector()
        detector.set_pipeline(ListPipeline([BoxObject.from_xywh(0, 0, 1, 1)]))
        assert isinstance(detector.process_frame(FRAME), tuple)

    def test_intermediate_output(self):
        detector = _make_detector()
        assert detector.get_intermediate_output(0) is None
        
        detector.set_pipeline(MockPipeline())
        detector.process_frame(FRAME)
        assert detector.get_intermediate_output(0) is FRAME
        assert detector.get_intermediate_output(7) is None

    def test_intermediate_output_uses_pipeline_of_current_cycle(self):
        detector = _make_detector()
        first, second = MockPipeline(), MockPipeline()
        detector.set_pipeline(first)
        detector.process_frame(FRAME)

        # Swap lands between process_frame and video out of the same cycle
        detector.set_pipeline(second)
        assert detector.get_intermediate_output(0) is FRAME

        detector.process_frame(FRAME)
        assert second.last_frame is FRAME
        assert first.process_count == 1

    def test_annotate_frame_draws_rects(self):
        detector = _make_detector()
        frame = np.zeros((100, 100, 3), dtype=np.uint8)
        objects = [BoxObject.from_xyxy(10, 10, 40, 40), BoxObject.from_xyxy(60, 60, 90, 90)]
        
        detector.annotate_frame(frame, objects)
        
        assert tuple(frame[10, 25]) == ANNOTATE_COLOR
        assert tuple(frame[60, 75]) == ANNOTATE_COLOR
        # Rect outline only
        assert tuple(frame[25, 25]) == (0, 0, 0)

    def test_process_errors_propagate(self):
        class FailingPipeline(MockPipeline):
            def process(self, frame):
                raise RuntimeError("boom")

        detector = _make_detector()
        detector.set_pipeline(FailingPipeline())
        with pytest.raises(RuntimeError, match="boom"):
            detector.process_frame(FRAME)


class TestGetTargets:
    def _detector_with(self, objects, mapper=None):
        detector = _make_detector(mapper)
        detector.set_pipeline(MockPipeline(objects))
        detector.scheduler.run_cycle(FRAME)
        return detector

    def test_no_snapshot_returns_empty_list(self):
        detector = _make_detector()
        assert detector.get_targets() == []

    def test_disabled_vs_empty(self):
        detector = self._detector_with([])
        targets = detector.get_targets()
        assert targets == []
        assert detector.is_enabled() is True
        
        detector.set_pipeline(None)
        assert detector.get_targets() == []
        assert detector.is_enabled() is False

    @pytest.mark.parametrize("key", [None, lambda t: t.area])
    def test_empty_regardless_of_filter_and_key(self, key):
        detector = self._detector_with([])
        result = detector.get_targets(filter=lambda o: True, key=key)
        assert result == []
        assert isinstance(result, list)

    def test_filter_rejecting_all(self):
        detector = self._detector_with([BoxObject.from_xywh(0, 0, 5, 5), BoxObject.from_xywh(10, 10, 5, 5)])
        assert detector.get_targets(filter=lambda o: False) == []

    def test_filter_drops_false_positives(self):
        small = BoxObject.from_xywh(0, 0, 2, 2)
        big = BoxObject.from_xywh(10, 10, 20, 20)
        detector = self._detector_with([small, big])
        
        targets = detector.get_targets(filter=lambda o: o.area > 10)
        
        assert [t.detected_object for t in targets] == [big]

    def test_sort_by_descending_area(self):
        r1 = BoxObject.from_xywh(0, 0, 2, 5)     # area 10
        r2 = BoxObject.from_xywh(100, 100, 5, 10)  # area 50
        detector = self._detector_with([r1, r2])
        
        targets = detector.get_targets(key=lambda t: t.area, reverse=True)
        
        assert [t.rect for t in targets] == [r2.rect, r1.rect]

    def test_detection_order_preserved_without_key(self):
        objects = [BoxObject.from_xywh(i * 10, 0, 5, 5 + i) for i in range(4)]
        detector = self._detector_with(objects)
        targets = detector.get_targets()
        assert [t.detected_object for t in targets] == objects

    def test_filter_exception_skips_object(self, caplog):
        good = BoxObject.from_xywh(0, 0, 5, 5, class_name="cone")
        bad = BoxObject.from_xywh(10, 10, 5, 5)
        detector = self._detector_with([bad, good])
        
        with caplog.at_level(logging.WARNING):
            targets = detector.get_targets(filter=lambda o: o.class_name.startswith("c"))
        
        assert [t.detected_object for t in targets] == [good]
        assert "filter failed" in caplog.text

    def test_geometry_only_without_mapper(self):
        obj = BoxObject.from_xyxy(310, 380, 330, 400)
        detector = self._detector_with([obj])
        
        target = detector.get_targets(object_height_offset=2.0, camera_height=10.0)[0]
        
        assert target.is_localized is False
        assert target.ground_position is None
        assert target.distance is None
        assert target.distance_from_image_center == (0.0, 150.0)
        assert target.image_width == 640

    def test_localized_target(self):
        obj = BoxObject.from_xyxy(310, 380, 330, 400)
        detector = self._detector_with([obj], mapper=AFFINE_MAPPER)
        
        target = detector.get_targets()[0]
        
        assert target.is_localized is True
        assert target.ground_position == pytest.approx((0.0, 8.0), abs=1e-9)
        assert target.bearing == pytest.approx(0.0, abs=1e-9)
        assert target.distance == pytest.approx(8.0)
        assert target.target_width == pytest.approx(2.0)

    def test_bearing_off_center(self):
        obj = BoxObject.from_xyxy(410, 380, 430, 400)
        detector = self._detector_with([obj], mapper=AFFINE_MAPPER)
        
        target = detector.get_targets()[0]
        
        assert target.ground_position == pytest.approx((10.0, 8.0), abs=1e-9)
        assert target.bearing == pytest.approx(math.degrees(math.atan2(10.0, 8.0)))
        assert target.distance == pytest.approx(math.hypot(10.0, 8.0))

    def test_height_correction(self):
        obj = BoxObject.from_xyxy(310, 380, 330, 400)
        detector = self._detector_with([obj], mapper=AFFINE_MAPPER)
        
        target = detector.get_targets(object_height_offset=5.0, camera_height=10.0)[0]
        
        assert target.ground_position == pytest.approx((0.0, 4.0), abs=1e-9)
        assert target.distance == pytest.approx(4.0)
        assert target.target_width == pytest.approx(1.0)

    def test_invalid_height_offset_rejected(self):
        detector = self._detector_with([BoxObject.from_xywh(0, 0, 5, 5)], mapper=AFFINE_MAPPER)
        with pytest.raises(ValueError):
            detector.get_targets(object_height_offset=12.0, camera_height=10.0)

    def test_targets_are_fresh_each_query(self):
        detector = self._detector_with([BoxObject.from_xywh(0, 0, 5, 5)])
        first = detector.get_targets()
        second = detector.get_targets()
        assert first[0] is not second[0]
        assert first[0] == second[0]

    def test_targets_logged_at_debug(self, caplog):
        detector = self._detector_with([BoxObject.from_xywh(0, 0, 5, 5)])
        with caplog.at_level(logging.DEBUG, logger="detection.detector"):
            detector.get_targets()
        assert "[0] Target=" in caplog.text

    def test_injected_logger(self, caplog):
        logger = logging.getLogger("vision.detector.injected")
        detector = Detector("inj", 640, 480, scheduler_factory=MockScheduler, logger=logger)
        with caplog.at_level(logging.INFO, logger="vision.detector.injected"):
            detector.set_pipeline(MockPipeline())
        assert any(r.name == "vision.detector.injected" for r in caplog.records)


class TestFactories:
    def test_create_detector_from_config(self, valid_config):
        config = Config.from_dict(valid_config)
        detector = create_detector_from_config(config, MockScheduler, name="front")
        
        assert str(detector) == "front"
        assert detector.mapper is not None
        assert detector.get_processing_interval() == 50
        assert detector.scheduler.video_out == (0, True)
        assert detector.get_pipeline() is None

    def test_create_detector_without_calibration(self, valid_config):
        del valid_config["calibration"]
        detector = create_detector_from_config(Config.from_dict(valid_config), MockScheduler)
        assert detector.mapper is None

    def test_load_pipeline_class(self):
        assert load_pipeline_class("pipeline.base:StagedPipeline") is StagedPipeline

    def test_load_pipeline_class_rejects_non_pipeline(self):
        with pytest.raises(ValueError, match="not a Pipeline"):
            load_pipeline_class("models.geometry:BoundingBox")

    def test_load_pipeline_class_rejects_bad_format(self):
        with pytest.raises(ValueError, match="module:ClassName"):
            load_pipeline_class("pipeline.base.StagedPipeline")

    def test_load_pipeline_class_missing_module(self):
        with pytest.raises(ImportError):
            load_pipeline_class("does_not_exist.module:Thing")
