"""Engine module - Publication store and the scheduled synchronization jobs."""
