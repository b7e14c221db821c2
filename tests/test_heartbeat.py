import threading
import time

import pytest

from gateway_session import HeartbeatDriver, WriteError


class Recorder:
    def __init__(self, fail_after=None) -> None:
        self.calls = 0
        self.fail_after = fail_after
        self.lock = threading.Lock()

    def __call__(self) -> None:
        with self.lock:
            if self.fail_after is not None and self.calls >= self.fail_after:
                raise WriteError('Connection lost')
            self.calls += 1


class TestHeartbeatDriver:
    def test_interval_in_seconds(self) -> None:
        driver = HeartbeatDriver(Recorder(), 41250)

        assert driver.interval == 41.25
        assert not driver.running

    @pytest.mark.parametrize('interval', (0, -5))
    def test_invalid_interval(self, interval: int) -> None:
        with pytest.raises(ValueError):
            HeartbeatDriver(Recorder(), interval)

    def test_beats_per_interval(self) -> None:
        recorder = Recorder()
        driver = HeartbeatDriver(recorder, 50)

        driver.start()
        time.sleep(0.275)

        assert 4 <= recorder.calls <= 6
        assert driver.running

        recorder.fail_after = 0
        driver.join(1)

    def test_first_beat_after_interval(self) -> None:
        recorder = Recorder(fail_after=1)
        driver = HeartbeatDriver(recorder, 200)

        driver.start()
        time.sleep(0.05)

        assert recorder.calls == 0
        driver.join(1)
        assert recorder.calls == 1

    def test_stops_on_write_error(self) -> None:
        recorder = Recorder(fail_after=2)
        driver = HeartbeatDriver(recorder, 20)

        driver.start()
        driver.join(1)

        assert not driver.running
        assert driver.beats == 2

        time.sleep(0.1)
        assert recorder.calls == 2

    def test_start_twice(self) -> None:
        driver = HeartbeatDriver(Recorder(fail_after=0), 10)

        driver.start()
        with pytest.raises(RuntimeError):
            driver.start()

        driver.join(1)
