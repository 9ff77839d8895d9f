import json
import logging
import os
import os.path as path
import queue
import sys
import threading
from datetime import datetime

import requests
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

import config_helper
import defaults
import ffmpeg_helper
import log_helper
from compressor import MediaCompressor, compress_file
from errors import CompressionError, CompressionExhausted, EncodeError
from file_helper import AUDIO_SUFFIX, get_size_mb, is_pipeline_artifact, output_path_for, safe_remove
from progress import STAGE_UPLOAD, ProgressReporter

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT = 30  # seconds
SUCCESS_STATUS_CODES = (200, 204)

# Audio extraction settings (before any compression)
AUDIO_EXTRACT_OPTIONS = {
    'vn': None,
    'acodec': 'libmp3lame',
    'audio_bitrate': '128k',
    'ar': '44100',
}


def is_video_file(filename):
    return str(filename).lower().endswith(defaults.VIDEO_EXTENSIONS)


def extract_audio(video_path, encoder=None):
    """Extract the audio track of video_path to <stem>_audio.mp3"""
    encoder = encoder or ffmpeg_helper.FFmpegEncoder()
    output_path = output_path_for(video_path, AUDIO_SUFFIX, ".mp3")
    try:
        return encoder.invoke(video_path, output_path, AUDIO_EXTRACT_OPTIONS)
    except EncodeError:
        safe_remove(output_path)
        raise


def format_processing_time(seconds):
    if seconds < 60:
        return f"{seconds:.1f} seconds"
    minutes = int(seconds // 60)
    remaining_seconds = seconds % 60
    return f"{minutes} minute{'s' if minutes != 1 else ''} {remaining_seconds:.1f} seconds"


def build_message(clip_name, user_name="", file_size_mb=None, processing_time=None):
    """Discord message text sent along with a clip"""
    message = []
    if user_name:
        message.append(f"**{user_name}** shared a clip: **{clip_name}**")
    else:
        message.append(f"New clip: **{clip_name}**")

    if file_size_mb is not None:
        message.append(f"**Size:** {file_size_mb:.2f}MB")

    if processing_time is not None:
        message.append(f"**Processing time:** {format_processing_time(processing_time.total_seconds())}")

    return "\n".join(message)


def send_to_webhook(file_path, webhook_url, content=None, timeout=WEBHOOK_TIMEOUT):
    """Send a file to Discord using a webhook. Returns True on success."""
    if not webhook_url:
        logger.error("Webhook URL not set")
        return False

    filename = os.path.basename(file_path)
    mime_type = 'audio/mpeg' if filename.lower().endswith('.mp3') else 'video/mp4'

    try:
        with open(file_path, 'rb') as f:
            files = {'file': (filename, f, mime_type)}
            data = {}
            if content:
                data['payload_json'] = json.dumps({'content': content})
            response = requests.post(webhook_url, files=files, data=data, timeout=timeout)
    except OSError as e:
        logger.error("Error opening file %s: %s", file_path, e)
        return False
    except requests.RequestException as e:
        logger.error("Error sending clip to Discord webhook: %s", e)
        return False

    if response.status_code in SUCCESS_STATUS_CODES:
        logger.info("Successfully sent clip to Discord webhook: %s", file_path)
        return True

    logger.error("Discord API error: HTTP %d - %s", response.status_code, response.text)
    return False


def test_webhook(webhook_url, timeout=WEBHOOK_TIMEOUT):
    """Send a plain test message to the webhook"""
    data = {"content": "Test message from Auto Clip Sender! If you see this, your webhook is working correctly."}
    try:
        response = requests.post(webhook_url, json=data, timeout=timeout)
    except requests.RequestException as e:
        logger.error("Error testing webhook: %s", e)
        return False

    if response.status_code in SUCCESS_STATUS_CODES:
        logger.info("Webhook test successful")
        return True
    logger.warning("Webhook test failed: HTTP %d - %s", response.status_code, response.text)
    return False


class ClipHandler(FileSystemEventHandler):
    def __init__(self, processor):
        super().__init__()
        self.processor = processor

    def on_created(self, event):
        if event.is_directory:
            return
        self.processor.enqueue(event.src_path)

    def on_moved(self, event):
        # Some recorders write to a temp name and rename when done
        if event.is_directory:
            return
        self.processor.enqueue(event.dest_path)


class ClipProcessor:
    """
    Watches the configured folders and relays every new clip to Discord.

    Clips are processed one at a time by a worker thread, in detection order.
    """

    def __init__(self, config=None, stop_event=None, progress_sink=None, compressor=None, encoder=None):
        self.config = config if config is not None else config_helper.load_config()
        self.stop_event = stop_event or threading.Event()
        self.reporter = ProgressReporter(progress_sink)
        self.compressor = compressor or MediaCompressor.from_config(self.config, progress_sink)
        self.encoder = encoder or self.compressor.encoder

        self.processing_queue = queue.Queue()
        self.processing_lock = threading.Lock()
        self.is_processing = False
        self.detection_times = {}
        self.observer = None

    @property
    def max_size_bytes(self):
        return config_helper.get_max_size_bytes(self.config)

    def enqueue(self, filepath):
        """Queue a newly detected file, returns False when the file is ignored"""
        if not is_video_file(filepath):
            logger.debug("Non-video file created: %s", filepath)
            return False

        # Files written by the pipeline would otherwise be sent again
        if is_pipeline_artifact(filepath):
            logger.info("Skipping generated file: %s", filepath)
            return False

        normalized_path = path.normpath(filepath)
        if normalized_path in self.detection_times:
            logger.debug("Already queued: %s", normalized_path)
            return False

        logger.info("New video file detected: %s", filepath)
        self.detection_times[normalized_path] = datetime.now()
        self.processing_queue.put(normalized_path)

        with self.processing_lock:
            if not self.is_processing:
                self.is_processing = True
                threading.Thread(target=self.process_queue, daemon=True).start()
        return True

    def process_queue(self):
        """Process files from the queue one at a time"""
        try:
            while not self.stop_event.is_set():
                try:
                    filepath = self.processing_queue.get(timeout=1.0)
                except queue.Empty:
                    # enqueue() puts before taking the lock, so an empty queue here is really empty
                    with self.processing_lock:
                        if self.processing_queue.empty():
                            self.is_processing = False
                            return
                    continue

                try:
                    self.process_clip(filepath)
                except Exception:
                    # Keep processing the next file even if this one failed
                    logger.exception("Unexpected error processing %s", filepath)
                finally:
                    self.processing_queue.task_done()
        finally:
            if self.stop_event.is_set():
                with self.processing_lock:
                    self.is_processing = False
            logger.debug("Queue processor stopped")

    def process_clip(self, filepath):
        """Compress (if needed) and send one clip. Returns True when it was sent."""
        normalized_path = path.normpath(filepath)
        detection_time = self.detection_times.pop(normalized_path, None) or datetime.now()

        if self.stop_event.is_set():
            logger.info("Skipping %s due to stop request", filepath)
            return False

        # Let the recorder finish writing the file
        check_interval = float(self.config.get('CHECK_INTERVAL') or 0)
        if check_interval > 0 and self.stop_event.wait(check_interval):
            return False

        if not os.path.exists(filepath):
            logger.warning("File disappeared before processing: %s", filepath)
            return False

        clip_name = os.path.basename(filepath)
        send_as_audio = bool(self.config.get('SEND_AS_AUDIO'))
        generated_files = []

        try:
            send_path = filepath
            if send_as_audio:
                logger.info("Extracting audio from %s", clip_name)
                send_path = extract_audio(filepath, self.encoder)
                generated_files.append(send_path)

            max_size_bytes = self.max_size_bytes
            if os.path.getsize(send_path) > max_size_bytes:
                logger.info("%s is %.2fMB, compressing to fit %.2fMB",
                            os.path.basename(send_path), get_size_mb(send_path), max_size_bytes / (1024 * 1024))
                send_path = compress_file(send_path, send_as_audio, max_size_bytes,
                                          config=self.config, compressor=self.compressor)
                generated_files.append(send_path)

            file_size = os.path.getsize(send_path)
            processing_time = datetime.now() - detection_time
            logger.info("Total processing time: %.2f seconds", processing_time.total_seconds())
            content = build_message(clip_name, self.config.get('USER_NAME', ""),
                                    file_size / (1024 * 1024), processing_time)

            self.reporter.update(STAGE_UPLOAD, 0.0, f"Sending {clip_name} to Discord...")
            if not send_to_webhook(send_path, self.config.get('WEBHOOK_URL', ""), content):
                self.reporter.fail(STAGE_UPLOAD, f"Could not send {clip_name}", "Discord upload failed")
                return False

            config_helper.increment_clip_count(file_size)
            self.reporter.complete(STAGE_UPLOAD, f"Sent {clip_name} to Discord")
            return True
        except CompressionExhausted as e:
            logger.error("Could not make %s small enough, not sending it: %s", clip_name, e)
            return False
        except (CompressionError, OSError) as e:
            logger.error("Error processing clip %s: %s", filepath, e)
            self.reporter.fail(STAGE_UPLOAD, f"Could not process {clip_name}", e)
            return False
        finally:
            for generated in generated_files:
                if generated != filepath:
                    safe_remove(generated)

    def start(self):
        """Start watching the configured folders"""
        if not self.config.get('WEBHOOK_URL'):
            logger.error("No webhook URL configured. Please set the webhook URL in the application settings.")
            return False

        self.stop_event.clear()
        handler = ClipHandler(self)
        observer = Observer()
        recursive = bool(self.config.get('RECURSIVE_MONITORING'))

        watched = 0
        for folder in self.config.get('MONITOR_PATHS', []):
            if not os.path.isdir(folder):
                logger.warning("Monitor folder does not exist: %s", folder)
                continue
            observer.schedule(handler, folder, recursive=recursive)
            logger.info("Watching %s (recursive: %s)", folder, recursive)
            watched += 1

        if watched == 0:
            logger.error("No folders could be watched")
            return False

        observer.start()
        self.observer = observer
        logger.info("Clip monitoring started for %d folders - waiting for new recordings...", watched)
        return True

    def run(self):
        """Watch until the stop event is set"""
        if not self.start():
            return False
        while not self.stop_event.wait(1):
            pass
        if self.observer is not None:
            self._shutdown()
        return True

    def stop(self):
        """Stop the monitoring process"""
        if self.stop_event.is_set() and self.observer is None:
            return
        logger.info("Stopping clip monitoring...")
        self.stop_event.set()
        self._shutdown()

    def _shutdown(self):
        if self.observer is not None:
            self.observer.stop()
            self.observer.join(timeout=5.0)
            self.observer = None

        # Drop whatever is still waiting
        while True:
            try:
                self.processing_queue.get_nowait()
                self.processing_queue.task_done()
            except queue.Empty:
                break
        self.detection_times.clear()
        logger.info("Clip monitoring stopped.")


def main():
    """Headless monitoring from the command line"""
    config_helper.load_environment()
    config_helper.ensure_config_files()
    config = config_helper.load_config()
    log_helper.setup_logging(config.get('LOG_LEVEL', "INFO"))
    ffmpeg_helper.hide_console_windows()

    processor = ClipProcessor(config)
    try:
        return 0 if processor.run() else 1
    except KeyboardInterrupt:
        logger.info("Stopping due to keyboard interrupt...")
        processor.stop()
        return 0


if __name__ == "__main__":
    sys.exit(main())
