"""Device descriptors and the in-memory reference device."""

from texzero.device.simulated import KNOWN_FAULTS, SimulatedDevice, SimulatedDevicePool

__all__ = ["KNOWN_FAULTS", "SimulatedDevice", "SimulatedDevicePool"]
