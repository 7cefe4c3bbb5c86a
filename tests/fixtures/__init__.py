"""Test fixtures for the symptom correlator."""
