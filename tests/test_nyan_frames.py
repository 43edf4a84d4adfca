"""
Tests for GIF frame extraction and the playback clock.
"""

import pytest

from nyan_frames import (DEFAULT_FRAME_DURATION, MAX_TICK_SECONDS,
                         MIN_FRAME_DURATION, AnimationFrame, FrameClock,
                         PlaybackState, advance, decode_frames, frame_duration,
                         load)


class FakeSource:
    """Stands in for a CGImageSource: images[i] None means undecodable."""

    def __init__(self, images, props):
        self.images = images
        self.props = props

    def count(self):
        return len(self.images)

    def image_at(self, i):
        img = self.images[i]
        if isinstance(img, Exception):
            raise img
        return img

    def properties_at(self, i):
        return self.props[i]


def frames_of(*durations):
    return [AnimationFrame(f"img{i}", d) for i, d in enumerate(durations)]


class TestFrameDuration:
    def test_unclamped_delay_preferred(self):
        assert frame_duration({"UnclampedDelayTime": 0.05, "DelayTime": 0.1}) == 0.05

    def test_falls_back_to_delay(self):
        assert frame_duration({"DelayTime": 0.07}) == 0.07

    def test_default_when_absent(self):
        assert frame_duration({}) == DEFAULT_FRAME_DURATION
        assert frame_duration(None) == DEFAULT_FRAME_DURATION

    def test_floored_to_minimum(self):
        """A zero unclamped delay still wins, but is floored."""
        assert frame_duration({"UnclampedDelayTime": 0, "DelayTime": 0.1}) == MIN_FRAME_DURATION
        assert frame_duration({"DelayTime": 0.001}) == MIN_FRAME_DURATION

    def test_non_numeric_values_ignored(self):
        assert frame_duration({"UnclampedDelayTime": "fast", "DelayTime": 0.2}) == 0.2
        assert frame_duration({"UnclampedDelayTime": True}) == DEFAULT_FRAME_DURATION


class TestDecodeFrames:
    def test_decodes_all_frames_in_order(self):
        src = FakeSource(["a", "b", "c"], [{"DelayTime": 0.1}, {}, {"UnclampedDelayTime": 0.03}])
        frames = decode_frames(src)
        assert [f.bitmap for f in frames] == ["a", "b", "c"]
        assert [f.duration for f in frames] == [0.1, DEFAULT_FRAME_DURATION, 0.03]

    def test_undecodable_frames_skipped(self):
        src = FakeSource(["a", None, RuntimeError("bad"), "d"], [{}, {}, {}, {}])
        frames = decode_frames(src)
        assert [f.bitmap for f in frames] == ["a", "d"]

    def test_empty_source(self):
        assert decode_frames(FakeSource([], [])) == []


class TestLoad:
    def test_missing_file_returns_empty(self, tmp_path):
        assert load(str(tmp_path / "nope.gif")) == []

    def test_empty_path_returns_empty(self):
        assert load("") == []

    def test_unreadable_container_returns_empty(self, tmp_path, monkeypatch):
        path = tmp_path / "broken.gif"
        path.write_bytes(b"GIF89a garbage")

        def explode(_path):
            raise OSError("cannot read")

        monkeypatch.setattr("nyan_frames._ImageIOSource", explode)
        assert load(str(path)) == []

    def test_no_decodable_frames_returns_empty(self, tmp_path, monkeypatch):
        path = tmp_path / "blank.gif"
        path.write_bytes(b"GIF89a")
        monkeypatch.setattr("nyan_frames._ImageIOSource",
                            lambda _path: FakeSource([None, None], [{}, {}]))
        assert load(str(path)) == []


class TestAdvance:
    def test_empty_sequence_never_changes(self):
        state = PlaybackState(0, 0.0)
        for dt in (0.0, 0.1, 5.0):
            new, changed = advance([], state, dt)
            assert new == state
            assert changed is False

    def test_accumulates_within_frame(self):
        frames = frames_of(0.1, 0.1)
        state, changed = advance(frames, PlaybackState(), 0.05)
        assert state.index == 0
        assert state.accumulated == pytest.approx(0.05)
        assert changed is False

    def test_steps_to_next_frame(self):
        frames = frames_of(0.1, 0.2)
        state, changed = advance(frames, PlaybackState(), 0.12)
        assert state.index == 1
        assert state.accumulated == pytest.approx(0.02)
        assert changed is True

    def test_crosses_several_short_frames(self):
        frames = frames_of(0.02, 0.02, 0.02, 0.1)
        state, _ = advance(frames, PlaybackState(), 0.07)
        assert state.index == 3
        assert state.accumulated == pytest.approx(0.01)

    def test_wraps_around(self):
        frames = frames_of(0.1, 0.1)
        state, changed = advance(frames, PlaybackState(1, 0.05), 0.06)
        assert state.index == 0
        assert changed is True

    def test_position_matches_total_modulo_loop(self):
        frames = frames_of(0.05, 0.1, 0.03, 0.2)
        loop = sum(f.duration for f in frames)
        increments = [0.033, 0.017, 0.25, 0.5, 0.04, 0.033, 0.12, 0.3]
        state = PlaybackState()
        for dt in increments:
            state, _ = advance(frames, state, dt)
        total = sum(increments)
        assert total > loop

        position = total % loop
        start = sum(f.duration for f in frames[:state.index])
        assert start + state.accumulated == pytest.approx(position)
        assert start <= position + 1e-9 < start + frames[state.index].duration + 1e-9

    def test_accumulated_below_current_duration(self):
        frames = frames_of(0.05, 0.1)
        state = PlaybackState()
        for _ in range(50):
            state, _ = advance(frames, state, 0.033)
            assert 0 <= state.index < len(frames)
            assert state.accumulated < frames[state.index].duration


class TestFrameClock:
    def test_first_tick_has_no_elapsed_time(self):
        clock = FrameClock(frames_of(0.1), clock=lambda: 100.0)
        dt, changed = clock.tick()
        assert dt == 0.0
        assert changed is False

    def test_elapsed_is_clamped(self):
        times = iter([0.0, 3600.0])
        clock = FrameClock(frames_of(0.1, 0.1, 0.1), clock=lambda: next(times))
        clock.tick()
        dt, _ = clock.tick()
        assert dt == MAX_TICK_SECONDS
        assert clock.state.index == (5 % 3)

    def test_frame_property(self):
        frames = frames_of(0.1, 0.1)
        times = iter([0.0, 0.15])
        clock = FrameClock(frames, clock=lambda: next(times))
        assert clock.frame is frames[0]
        clock.tick()
        clock.tick()
        assert clock.frame is frames[1]

    def test_empty_clock_has_no_frame(self):
        clock = FrameClock([])
        assert clock.frame is None
        assert clock.tick()[1] is False
