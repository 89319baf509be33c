"""Connection state machine, backoff, heartbeat and dispatch queue."""
