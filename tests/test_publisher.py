"""Tests for StatusPublisher."""

from __future__ import annotations

import json

import pytest
from host2mqtt.outcome import Outcome
from host2mqtt.publisher import StatusPublisher
from host2mqtt.state import LMStudioModel, LMStudioSnapshot, MediaSnapshot, PlaybackState

STATUS = "host2mqtt/studio-mac/status"


class TestAudio:
    def test_volume_and_mute(self, publisher, connection, audio):
        audio.get_mute.return_value = Outcome.success(True)
        publisher.publish_volume()
        publisher.publish_mute()
        assert connection.last(f"{STATUS}/volume") == "40"
        assert connection.last(f"{STATUS}/mute") == "true"

    def test_failed_reads_skip_publish(self, publisher, connection, audio):
        audio.get_volume.return_value = Outcome.unavailable("no osascript")
        audio.get_mute.return_value = Outcome.failed("boom")
        publisher.publish_volume()
        publisher.publish_mute()
        assert connection.published == []


class TestMetrics:
    def test_disk_topics(self, publisher, connection):
        publisher.publish_disk()
        assert connection.last(f"{STATUS}/disk/total") == "1000"
        assert connection.last(f"{STATUS}/disk/used") == "250"
        assert connection.last(f"{STATUS}/disk/free") == "750"
        assert connection.last(f"{STATUS}/disk/used_percent") == "25.00"
        assert connection.last(f"{STATUS}/disk/free_percent") == "75.00"

    def test_memory_topics(self, publisher, connection):
        publisher.publish_memory()
        assert connection.last(f"{STATUS}/memory/total") == "2000"

    def test_cpu_uses_previous_sample(self, publisher, connection, store, metrics):
        publisher.publish_cpu()
        first = connection.last(f"{STATUS}/cpu/used_percent")
        assert first == "15.00"
        publisher.publish_cpu()
        assert connection.last(f"{STATUS}/cpu/used_percent") == "0.00"
        assert connection.last(f"{STATUS}/cpu/free_percent") == "100.00"

    def test_uptime(self, publisher, connection):
        publisher.publish_uptime()
        assert connection.last(f"{STATUS}/uptime/seconds") == "93784"
        assert connection.last(f"{STATUS}/uptime/human") == "1 days, 2:03"

    def test_public_ip_placeholder(self, publisher, connection, metrics):
        metrics.public_ip.return_value = Outcome.failed("timeout")
        publisher.publish_public_ip()
        assert connection.last(f"{STATUS}/public_ip") == "unavailable"

    def test_battery_skipped_without_battery(self, publisher, connection, metrics):
        metrics.battery_percent.return_value = Outcome.unavailable("no battery")
        publisher.publish_battery()
        assert connection.published == []

    def test_device_use(self, publisher, connection):
        publisher.publish_device_use()
        assert connection.last(f"{STATUS}/microphone") == "ON"
        assert connection.last(f"{STATUS}/camera") == "OFF"

    def test_device_use_unavailable_reports_off(self, publisher, connection, metrics):
        metrics.device_use.return_value = Outcome.unavailable("no /proc")
        publisher.publish_device_use()
        assert connection.last(f"{STATUS}/microphone") == "OFF"
        assert connection.last(f"{STATUS}/camera") == "OFF"


class TestDisplaysAndPower:
    def test_refresh_displays_populates_store(self, publisher, store):
        publisher.refresh_displays()
        assert store.displays() == {"1": "Studio Display"}

    def test_brightness_retained(self, publisher, connection, store):
        publisher.refresh_displays()
        publisher.publish_all_brightness()
        assert connection.published == [(f"{STATUS}/display_1_brightness", "70", 0, True)]

    def test_caffeinate(self, publisher, connection, system):
        system.keep_awake_active.return_value = True
        publisher.publish_caffeinate()
        assert connection.last(f"{STATUS}/caffeinate") == "true"

    def test_alive_is_retained(self, publisher, connection):
        publisher.publish_alive()
        assert connection.published == [(f"{STATUS}/alive", "online", 1, True)]


class TestMedia:
    def test_publish_media_topics(self, publisher, connection):
        snapshot = MediaSnapshot(
            title="Song",
            artist="Band",
            album="LP",
            app_name="Music",
            playback_state=PlaybackState.PAUSED,
            duration_seconds=200,
            position_seconds=5,
        )
        publisher.publish_media(snapshot)
        assert connection.last(f"{STATUS}/now_playing") == "paused"
        assert connection.last(f"{STATUS}/media_state") == "paused"
        assert connection.last(f"{STATUS}/media_app") == "Music"
        assert connection.last(f"{STATUS}/media_duration") == "200"
        attrs = json.loads(connection.last(f"{STATUS}/now_playing_attr"))
        assert attrs == {
            "state": "paused",
            "title": "Song",
            "artist": "Band",
            "album": "LP",
            "app_name": "Music",
            "duration": 200,
            "position": 5,
        }
        player = json.loads(connection.last(f"{STATUS}/media_player"))
        assert player["media_title"] == "Song"
        assert player["media_album"] == "LP"

    def test_refresh_now_playing_replaces_state(self, publisher, store, media, connection):
        store.replace_media(MediaSnapshot(title="Old", album="Old LP"))
        media.now_playing.return_value = Outcome.success({"title": "New", "playing": True, "duration": 100})
        publisher.refresh_now_playing()
        snapshot = store.media()
        assert snapshot.title == "New"
        assert snapshot.album == ""
        assert snapshot.playback_state is PlaybackState.PLAYING
        assert connection.last(f"{STATUS}/now_playing") == "playing"

    def test_refresh_now_playing_unavailable(self, publisher, media, connection):
        media.now_playing.return_value = Outcome.unavailable("media-control not installed")
        publisher.refresh_now_playing()
        assert connection.published == []


@pytest.fixture
def lm_publisher(lmstudio_config, connection, store, audio, displays, system, media, metrics, lmstudio):
    return StatusPublisher(lmstudio_config, connection, store, audio, displays, system, media, metrics, lmstudio)


class TestLMStudio:
    def test_offline_publishes_empty_lists(self, lm_publisher, connection):
        lm_publisher.publish_lmstudio()
        assert connection.last(f"{STATUS}/lmstudio_server") == "offline"
        assert connection.last(f"{STATUS}/lmstudio_loaded_models") == "[]"
        assert connection.last(f"{STATUS}/lmstudio_available_models") == "[]"
        assert connection.last(f"{STATUS}/lmstudio_loaded_models_list") == "No models"

    def test_online_lists(self, lm_publisher, connection, lmstudio, store):
        loaded = LMStudioModel("qwen2.5-7b", "llm", "loaded")
        idle = LMStudioModel("nomic-embed", "embeddings", "not-loaded")
        lmstudio.snapshot.return_value = LMStudioSnapshot(running=True, loaded=(loaded,), available=(idle,))
        lm_publisher.publish_lmstudio()
        assert connection.last(f"{STATUS}/lmstudio_server") == "online"
        assert json.loads(connection.last(f"{STATUS}/lmstudio_loaded_models")) == [
            {"id": "qwen2.5-7b", "type": "llm", "state": "loaded"}
        ]
        assert connection.last(f"{STATUS}/lmstudio_loaded_models_count") == "1"
        assert connection.last(f"{STATUS}/lmstudio_available_models_list") == "nomic-embed (embeddings, not-loaded)"
        assert store.lmstudio().running is True

    def test_disabled_is_noop(self, publisher, connection):
        publisher.publish_lmstudio()
        assert connection.published == []


class TestResync:
    def test_publish_all_covers_every_group(self, publisher, connection):
        publisher.publish_all()
        topics = set(connection.topics())
        for expected in (
            "alive",
            "volume",
            "mute",
            "microphone",
            "camera",
            "caffeinate",
            "display_1_brightness",
            "now_playing",
            "media_player",
            "user_activity",
            "battery",
            "disk/total",
            "cpu/used_percent",
            "memory/used",
            "uptime/human",
            "public_ip",
        ):
            assert f"{STATUS}/{expected}" in topics
        assert connection.last(f"{STATUS}/user_activity") == "inactive"

    def test_nothing_goes_out_while_disconnected(self, publisher, connection):
        connection.connected = False
        publisher.publish_all()
        assert connection.published == []

    def test_failed_media_read_republishes_stored_snapshot(self, publisher, connection, store, media):
        store.replace_media(MediaSnapshot(title="Song", artist="Band", playback_state=PlaybackState.PLAYING))
        media.now_playing.return_value = Outcome.failed("media-control timed out")
        publisher.publish_all()
        assert connection.last(f"{STATUS}/now_playing") == "playing"
        assert connection.last(f"{STATUS}/media_title") == "Song"
        player = json.loads(connection.last(f"{STATUS}/media_player"))
        assert player["media_artist"] == "Band"
        assert store.media().title == "Song"
