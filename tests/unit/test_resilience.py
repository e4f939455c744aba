"""Tests for out-of-memory recovery and quiet teardown."""

import pytest

from texzero.constants import BufferUsage
from texzero.device.simulated import SimulatedDevice
from texzero.exceptions import DeviceOutOfMemoryError, DeviceValidationError
from texzero.resilience import destroy_quietly, reclaim_device_memory, retry_out_of_memory


class TestRetryOutOfMemory:
    def test_success_first_try(self):
        attempts = []

        def attempt(number):
            attempts.append(number)
            return "ok"

        assert retry_out_of_memory(attempt, max_retries=3) == "ok"
        assert attempts == [1]

    def test_attempt_numbers_passed(self):
        attempts = []

        def attempt(number):
            attempts.append(number)
            if number < 3:
                raise DeviceOutOfMemoryError("full")
            return "ok"

        assert retry_out_of_memory(attempt, max_retries=2) == "ok"
        assert attempts == [1, 2, 3]

    def test_raises_after_last_attempt(self):
        attempts = []

        def attempt(number):
            attempts.append(number)
            raise DeviceOutOfMemoryError(f"full on {number}")

        with pytest.raises(DeviceOutOfMemoryError, match="full on 2"):
            retry_out_of_memory(attempt, max_retries=1)
        assert attempts == [1, 2]

    def test_zero_retries(self):
        attempts = []

        def attempt(number):
            attempts.append(number)
            raise DeviceOutOfMemoryError("full")

        with pytest.raises(DeviceOutOfMemoryError):
            retry_out_of_memory(attempt)
        assert attempts == [1]

    def test_other_errors_not_retried(self):
        attempts = []

        def attempt(number):
            attempts.append(number)
            raise DeviceValidationError("bad usage")

        with pytest.raises(DeviceValidationError):
            retry_out_of_memory(attempt, max_retries=3)
        assert attempts == [1]

    def test_backoff(self, monkeypatch):
        sleeps = []
        monkeypatch.setattr("texzero.resilience.time.sleep", sleeps.append)

        def attempt(number):
            raise DeviceOutOfMemoryError("full")

        with pytest.raises(DeviceOutOfMemoryError):
            retry_out_of_memory(attempt, max_retries=3, delay_seconds=0.5, backoff_factor=2.0)
        assert sleeps == [0.5, 1.0, 2.0]

    def test_negative_retries(self):
        with pytest.raises(ValueError, match="max_retries"):
            retry_out_of_memory(lambda number: None, max_retries=-1)


class TestReclaimDeviceMemory:
    def test_without_device(self):
        assert reclaim_device_memory() == 0

    def test_device_without_hook(self):
        assert reclaim_device_memory(object()) == 0

    def test_releases_destroyed_resources(self):
        device = SimulatedDevice()
        device.create_buffer(256, BufferUsage.COPY_DST).destroy()
        assert device.allocated_bytes == 256
        assert reclaim_device_memory(device) == 256
        assert device.allocated_bytes == 0

    def test_live_resources_stay_allocated(self):
        device = SimulatedDevice()
        device.create_buffer(64, BufferUsage.COPY_DST)
        assert reclaim_device_memory(device, attempt=2) == 0
        assert device.allocated_bytes == 64

    def test_collects_garbage_from_second_attempt(self, monkeypatch):
        collections = []
        monkeypatch.setattr("texzero.resilience.gc.collect", lambda: collections.append(1))
        reclaim_device_memory(SimulatedDevice(), attempt=1)
        assert collections == []
        reclaim_device_memory(SimulatedDevice(), attempt=2)
        assert collections == [1]

    def test_failing_hook_is_logged_not_raised(self):
        class Device:
            def reclaim(self):
                raise RuntimeError("driver lost")

        assert reclaim_device_memory(Device()) == 0


class TestDestroyQuietly:
    def test_destroys(self):
        device = SimulatedDevice()
        buffer = device.create_buffer(64, BufferUsage.COPY_DST)
        assert destroy_quietly(buffer)
        assert buffer.destroyed

    def test_nothing_to_destroy(self):
        assert destroy_quietly(None)

    def test_teardown_error_is_reported_not_raised(self):
        class Resource:
            def destroy(self):
                raise DeviceValidationError("already destroyed")

        assert destroy_quietly(Resource()) is False
