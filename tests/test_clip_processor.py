import json
import os
import threading
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests
from watchdog.events import DirCreatedEvent, FileCreatedEvent, FileMovedEvent

import clip_processor
import config_helper
from clip_processor import ClipHandler, ClipProcessor, build_message, format_processing_time, send_to_webhook
from compressor import MediaCompressor
from conftest import StubEncoder, StubProber, dir_listing
from progress import STAGE_UPLOAD

MB = 1024 * 1024
WEBHOOK = "https://discord.invalid/api/webhooks/1/token"


def make_config(**overrides):
    config = {
        'WEBHOOK_URL': WEBHOOK,
        'MONITOR_PATHS': [],
        'RECURSIVE_MONITORING': False,
        'MAX_FILE_SIZE_MB': 1,
        'CHECK_INTERVAL': 0,
        'SEND_AS_AUDIO': False,
        'USER_NAME': "",
    }
    config.update(overrides)
    return config


def make_processor(config, encoder, progress_sink=None):
    compressor = MediaCompressor(encoder=encoder, prober=StubProber(duration=30.0))
    return ClipProcessor(config, progress_sink=progress_sink, compressor=compressor)


def response(status_code, text=""):
    mock = MagicMock()
    mock.status_code = status_code
    mock.text = text
    return mock


class TestMessages:
    def test_with_user_name(self):
        message = build_message("clip.mp4", "sam", 4.5, timedelta(seconds=12.34))
        assert message.splitlines() == [
            "**sam** shared a clip: **clip.mp4**",
            "**Size:** 4.50MB",
            "**Processing time:** 12.3 seconds",
        ]

    def test_without_user_name(self):
        assert build_message("clip.mp4") == "New clip: **clip.mp4**"

    @pytest.mark.parametrize("seconds, expected", [
        (5, "5.0 seconds"),
        (61, "1 minute 1.0 seconds"),
        (150.5, "2 minutes 30.5 seconds"),
    ])
    def test_processing_time(self, seconds, expected):
        assert format_processing_time(seconds) == expected


class TestSendToWebhook:
    def test_posts_file_with_payload(self, tmp_path):
        clip = tmp_path / "clip.mp4"
        clip.write_bytes(b"video")
        with patch("clip_processor.requests.post", return_value=response(204)) as post:
            assert send_to_webhook(str(clip), WEBHOOK, "hello")

        args, kwargs = post.call_args
        assert args[0] == WEBHOOK
        name, _, mime = kwargs['files']['file']
        assert (name, mime) == ("clip.mp4", "video/mp4")
        assert json.loads(kwargs['data']['payload_json']) == {'content': "hello"}
        assert kwargs['timeout'] == clip_processor.WEBHOOK_TIMEOUT

    def test_mp3_mime_type(self, tmp_path):
        clip = tmp_path / "clip_audio.mp3"
        clip.write_bytes(b"audio")
        with patch("clip_processor.requests.post", return_value=response(200)) as post:
            assert send_to_webhook(str(clip), WEBHOOK)
        assert post.call_args[1]['files']['file'][2] == "audio/mpeg"

    def test_error_status(self, tmp_path):
        clip = tmp_path / "clip.mp4"
        clip.write_bytes(b"video")
        with patch("clip_processor.requests.post", return_value=response(413, "Request entity too large")):
            assert not send_to_webhook(str(clip), WEBHOOK)

    def test_request_exception(self, tmp_path):
        clip = tmp_path / "clip.mp4"
        clip.write_bytes(b"video")
        with patch("clip_processor.requests.post", side_effect=requests.ConnectionError("offline")):
            assert not send_to_webhook(str(clip), WEBHOOK)

    def test_missing_url_or_file(self, tmp_path):
        with patch("clip_processor.requests.post") as post:
            assert not send_to_webhook(str(tmp_path / "clip.mp4"), "")
            assert not send_to_webhook(str(tmp_path / "missing.mp4"), WEBHOOK)
        post.assert_not_called()

    def test_test_webhook(self):
        with patch("clip_processor.requests.post", return_value=response(204)) as post:
            assert clip_processor.test_webhook(WEBHOOK)
        assert "content" in post.call_args[1]['json']


class TestClipHandler:
    def test_created_and_moved_files_are_enqueued(self):
        processor = MagicMock()
        handler = ClipHandler(processor)
        handler.on_created(FileCreatedEvent("/clips/a.mp4"))
        handler.on_moved(FileMovedEvent("/clips/b.tmp", "/clips/b.mp4"))
        handler.on_created(DirCreatedEvent("/clips/folder"))
        assert [c[0][0] for c in processor.enqueue.call_args_list] == ["/clips/a.mp4", "/clips/b.mp4"]


class TestEnqueue:
    @pytest.fixture
    def processor(self):
        with patch("clip_processor.threading.Thread") as thread:
            processor = make_processor(make_config(), StubEncoder([1]))
            processor.thread_class = thread
            yield processor

    def test_ignores_other_files(self, processor):
        assert not processor.enqueue("/clips/notes.txt")
        assert not processor.enqueue("/clips/clip_compressed.mp4")
        assert not processor.enqueue("/clips/clip_temp_3.mp4")
        assert processor.processing_queue.empty()

    def test_duplicate_detection(self, processor):
        assert processor.enqueue("/clips/a.mp4")
        assert not processor.enqueue("/clips/a.mp4")
        assert processor.processing_queue.qsize() == 1

    def test_single_worker(self, processor):
        processor.enqueue("/clips/a.mp4")
        processor.enqueue("/clips/b.MKV")
        assert processor.processing_queue.qsize() == 2
        assert processor.thread_class.call_count == 1
        assert processor.is_processing


class TestProcessClip:
    @pytest.fixture(autouse=True)
    def isolated_stats(self, config_home):
        return config_home

    def test_small_clip_is_sent_unchanged(self, make_source, media_dir):
        source = make_source(size=MB // 2)
        encoder = StubEncoder([1])
        processor = make_processor(make_config(USER_NAME="sam"), encoder)

        with patch("clip_processor.send_to_webhook", return_value=True) as send:
            assert processor.process_clip(source)

        assert send.call_args[0][0] == source
        assert "**sam** shared a clip: **clip.mp4**" in send.call_args[0][2]
        assert encoder.calls == []
        assert config_helper.load_stats()['TOTAL_CLIPS'] == 1
        assert dir_listing(media_dir) == ["clip.mp4"]

    def test_large_clip_is_compressed_then_cleaned_up(self, make_source, media_dir, events):
        source = make_source(size=3 * MB)
        encoder = StubEncoder([2 * MB, MB // 2])
        processor = make_processor(make_config(), encoder, progress_sink=events)
        sent = []

        def fake_send(path, url, content=None):
            sent.append((path, os.path.getsize(path)))
            return True

        with patch("clip_processor.send_to_webhook", side_effect=fake_send):
            assert processor.process_clip(source)

        assert sent == [(str(media_dir / "clip_compressed.mp4"), MB // 2)]
        assert dir_listing(media_dir) == ["clip.mp4"]
        assert events.events[-1].stage == STAGE_UPLOAD
        assert events.events[-1].is_complete

    def test_unfittable_clip_is_not_sent(self, make_source, media_dir):
        source = make_source(size=3 * MB)
        processor = make_processor(make_config(), StubEncoder([2 * MB]))

        with patch("clip_processor.send_to_webhook") as send:
            assert not processor.process_clip(source)

        send.assert_not_called()
        assert dir_listing(media_dir) == ["clip.mp4"]
        assert os.path.getsize(source) == 3 * MB

    def test_send_as_audio(self, make_source, media_dir):
        source = make_source(size=3 * MB)
        encoder = StubEncoder([MB // 4])
        processor = make_processor(make_config(SEND_AS_AUDIO=True), encoder)

        with patch("clip_processor.send_to_webhook", return_value=True) as send:
            assert processor.process_clip(source)

        assert send.call_args[0][0] == str(media_dir / "clip_audio.mp3")
        assert encoder.options[0] == clip_processor.AUDIO_EXTRACT_OPTIONS
        assert dir_listing(media_dir) == ["clip.mp4"]

    def test_failed_audio_extraction(self, make_source, media_dir, events):
        source = make_source(size=3 * MB)
        processor = make_processor(make_config(SEND_AS_AUDIO=True), StubEncoder([None]), events)

        with patch("clip_processor.send_to_webhook") as send:
            assert not processor.process_clip(source)

        send.assert_not_called()
        assert events.events[-1].error
        assert dir_listing(media_dir) == ["clip.mp4"]

    def test_upload_failure(self, make_source, media_dir, events):
        source = make_source(size=3 * MB)
        processor = make_processor(make_config(), StubEncoder([MB // 2]), events)

        with patch("clip_processor.send_to_webhook", return_value=False):
            assert not processor.process_clip(source)

        assert events.events[-1].error
        assert config_helper.load_stats()['TOTAL_CLIPS'] == 0
        assert dir_listing(media_dir) == ["clip.mp4"]

    def test_missing_file(self, media_dir):
        processor = make_processor(make_config(), StubEncoder([1]))
        with patch("clip_processor.send_to_webhook") as send:
            assert not processor.process_clip(str(media_dir / "gone.mp4"))
        send.assert_not_called()

    def test_stop_request_skips_clip(self, make_source):
        source = make_source(size=100)
        processor = make_processor(make_config(), StubEncoder([1]))
        processor.stop_event.set()
        with patch("clip_processor.send_to_webhook") as send:
            assert not processor.process_clip(source)
        send.assert_not_called()


class TestMonitoring:
    def test_requires_webhook(self, media_dir):
        processor = make_processor(make_config(WEBHOOK_URL="", MONITOR_PATHS=[str(media_dir)]), StubEncoder([1]))
        assert not processor.start()

    def test_requires_an_existing_folder(self, tmp_path):
        processor = make_processor(make_config(MONITOR_PATHS=[str(tmp_path / "missing")]), StubEncoder([1]))
        with patch("clip_processor.Observer") as observer_class:
            assert not processor.start()
        observer_class.return_value.start.assert_not_called()

    def test_start_and_stop(self, media_dir, tmp_path):
        folders = [str(media_dir), str(tmp_path / "missing")]
        processor = make_processor(make_config(MONITOR_PATHS=folders, RECURSIVE_MONITORING=True),
                                   StubEncoder([1]))
        with patch("clip_processor.Observer") as observer_class:
            assert processor.start()
            observer = observer_class.return_value
            observer.schedule.assert_called_once()
            assert observer.schedule.call_args[0][1] == str(media_dir)
            assert observer.schedule.call_args[1]['recursive'] is True

            processor.stop()

        observer.stop.assert_called_once()
        observer.join.assert_called_once()
        assert processor.observer is None
        assert processor.stop_event.is_set()

    def test_run_returns_after_stop(self, media_dir):
        stop_event = threading.Event()
        processor = ClipProcessor(make_config(MONITOR_PATHS=[str(media_dir)]), stop_event,
                                  compressor=MediaCompressor(encoder=StubEncoder([1])))
        with patch("clip_processor.Observer") as observer_class:
            # Stop as soon as the observer is running
            observer_class.return_value.start.side_effect = stop_event.set
            assert processor.run()

        observer_class.return_value.stop.assert_called_once()
        assert processor.observer is None
