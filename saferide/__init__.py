"""SafeRide matching backend."""
