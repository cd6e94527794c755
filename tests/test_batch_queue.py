"""Tests for the batch queue and the batch render function."""

import functools
import os

import numpy as np
import pytest
from PIL import Image

from retouch_engine.io.image_loader import load_image
from retouch_engine.processing.batch_queue import (
    BatchItemSettings,
    BatchItemStatus,
    BatchQueue,
    batch_render_file,
    output_path_for,
)
from retouch_engine.processing.beauty import BeautyParams
from retouch_engine.processing.filters import FilterPipeline, FilterSelection


@pytest.fixture
def photo_files(tmp_path, noisy_image):
    paths = []
    for i in range(3):
        path = str(tmp_path / f"photo_{i}.png")
        Image.fromarray(noisy_image).save(path)
        paths.append(path)
    return paths


class TestBatchItemSettings:
    """Tests for settings merging."""

    def test_merge_prefers_local(self):
        global_settings = BatchItemSettings(mode="beauty", filter_name="暖色", export_quality=90)
        local = BatchItemSettings(mode="filter", output_filename="a.jpg")
        merged = local.merge_with_global(global_settings)
        assert merged.mode == "filter"
        assert merged.filter_name == "暖色"
        assert merged.export_quality == 90
        assert merged.output_filename == "a.jpg"

    def test_has_custom_settings(self):
        assert not BatchItemSettings().has_custom_settings()
        assert BatchItemSettings(ops=["ROTATE_90"]).has_custom_settings()

    def test_filter_selection_defaults(self):
        selection = BatchItemSettings().filter_selection
        assert selection.name == "柔和"
        assert selection.strength == 1.0

    def test_output_path(self, tmp_path):
        out_dir = str(tmp_path)
        assert output_path_for("/x/cat.png", out_dir, BatchItemSettings()) == os.path.join(
            out_dir, "retouched_cat.jpg"
        )
        assert output_path_for("/x/cat.png", out_dir, BatchItemSettings(export_format="png")).endswith(
            "retouched_cat.png"
        )
        assert output_path_for("/x/cat.png", out_dir, BatchItemSettings(output_filename="z.webp")) == os.path.join(
            out_dir, "z.webp"
        )


class TestBatchQueue:
    """Tests for queue bookkeeping and concurrent processing."""

    def test_add_remove_items(self):
        queue = BatchQueue()
        queue.add_items(["a.jpg", "b.jpg"])
        assert len(queue.get_items()) == 2
        assert queue.remove_item(0)
        assert not queue.remove_item(5)
        assert queue.get_item(0).filename == "b.jpg"

    def test_process_all_with_stub(self):
        queue = BatchQueue()
        queue.add_items(["a.jpg", "b.jpg", "c.jpg"])
        queue.add_item("d.jpg", BatchItemSettings(skip=True))

        def process(path, item_settings):
            if path == "b.jpg":
                raise ValueError("broken file")
            return "out_" + path

        stats = queue.process_all(process, max_workers=2)
        assert stats.completed == 2
        assert stats.failed == 1
        assert stats.skipped == 1
        assert stats.progress_percent == 100.0
        failed = [item for item in queue.get_items() if item.is_failed]
        assert failed[0].file_path == "b.jpg"
        assert "broken file" in failed[0].error_message

    def test_stats_rates(self):
        queue = BatchQueue()
        queue.add_items(["a.jpg", "b.jpg", "c.jpg", "d.jpg"])

        def process(path, item_settings):
            if path == "d.jpg":
                raise ValueError("broken file")
            return path

        stats = queue.process_all(process)
        assert stats.success_rate == pytest.approx(75.0)
        assert stats.average_time >= 0.0
        assert stats.average_time == pytest.approx(stats.total_time / 3)

    def test_empty_stats_rates(self):
        stats = BatchQueue().process_all(lambda path, s: path)
        assert stats.success_rate == 0.0
        assert stats.average_time == 0.0

    def test_empty_output_is_failure(self):
        queue = BatchQueue()
        queue.add_item("a.jpg")
        stats = queue.process_all(lambda path, s: None)
        assert stats.failed == 1

    def test_callbacks(self):
        queue = BatchQueue()
        queue.add_items(["a.jpg", "b.jpg"])
        started, completed, progress = [], [], []
        queue.set_callbacks(started.append, completed.append, progress.append)
        queue.process_all(lambda path, s: path, max_workers=2)
        assert len(started) == 2
        assert len(completed) == 2
        assert progress[-1].completed == 2

    def test_effective_settings_passed(self):
        queue = BatchQueue()
        queue.set_global_settings(BatchItemSettings(mode="filter", filter_name="黑白"))
        queue.add_item("a.jpg", BatchItemSettings(filter_strength=0.5))
        seen = []

        def process(path, item_settings):
            seen.append(item_settings)
            return path

        queue.process_all(process)
        assert seen[0].mode == "filter"
        assert seen[0].filter_name == "黑白"
        assert seen[0].filter_strength == 0.5

    def test_reset_status(self):
        queue = BatchQueue()
        queue.add_item("a.jpg")
        queue.process_all(lambda path, s: path)
        queue.reset_status()
        assert queue.get_items()[0].status == BatchItemStatus.PENDING

    def test_dict_round_trip(self):
        queue = BatchQueue()
        queue.set_output_dir("/tmp/out")
        queue.add_item("a.jpg", BatchItemSettings(
            mode="beauty", beauty=BeautyParams(smooth=2, whiten=0.1), ops=["ROTATE_90"],
        ))
        restored = BatchQueue.from_dict(queue.to_dict())
        assert restored.get_output_dir() == "/tmp/out"
        item = restored.get_item(0)
        assert item.settings.beauty == BeautyParams(smooth=2, whiten=0.1)
        assert item.settings.ops == ["ROTATE_90"]
        assert restored.get_global_settings().beauty == BeautyParams.defaults()


class TestBatchRenderFile:
    """Tests for the standard per-item render function."""

    def test_beauty_batch(self, photo_files, tmp_path):
        out_dir = str(tmp_path / "out")
        queue = BatchQueue()
        queue.add_items(photo_files)
        stats = queue.process_all(functools.partial(batch_render_file, output_dir=out_dir), max_workers=3)
        assert stats.completed == 3
        assert sorted(os.listdir(out_dir)) == [
            "retouched_photo_0.jpg", "retouched_photo_1.jpg", "retouched_photo_2.jpg",
        ]

    def test_concurrent_items_match_serial(self, photo_files, tmp_path):
        item_settings = BatchItemSettings(
            mode="filter", filter_name="复古", filter_strength=0.8, export_format="png",
        )
        serial = batch_render_file(photo_files[0], item_settings, str(tmp_path / "serial"))

        queue = BatchQueue()
        queue.set_global_settings(item_settings)
        queue.add_items(photo_files)
        queue.process_all(functools.partial(batch_render_file, output_dir=str(tmp_path / "parallel")),
                          max_workers=3)

        expected = load_image(serial)
        for item in queue.get_items():
            assert np.array_equal(load_image(item.output_path), expected)

    def test_ops_replayed(self, photo_files, tmp_path):
        out = batch_render_file(
            photo_files[0],
            BatchItemSettings(mode="beauty", ops=["ROTATE_90"], export_format="png"),
            str(tmp_path),
        )
        assert load_image(out).shape[:2] == (64, 48)

    def test_filter_mode_defaults_to_soft(self, photo_files, tmp_path, noisy_image):
        out = batch_render_file(
            photo_files[0], BatchItemSettings(mode="filter", export_format="png"), str(tmp_path),
        )
        expected = FilterPipeline().render(noisy_image, FilterSelection("柔和")).image
        result = load_image(out)
        assert not np.array_equal(result, noisy_image)
        assert np.array_equal(result, expected)

    def test_unknown_mode(self, photo_files, tmp_path):
        with pytest.raises(ValueError):
            batch_render_file(photo_files[0], BatchItemSettings(mode="sketch"), str(tmp_path))

    def test_missing_file_fails_item(self, tmp_path):
        queue = BatchQueue()
        queue.add_item(str(tmp_path / "ghost.png"))
        stats = queue.process_all(functools.partial(batch_render_file, output_dir=str(tmp_path)))
        assert stats.failed == 1
        assert queue.get_items()[0].error_message == "Could not open this photo"
