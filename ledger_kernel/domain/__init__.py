"""Pure domain layer: snapshots, status enumerations, clock and events."""
