"""TrustGate data layer."""
