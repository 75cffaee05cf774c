"""Encoders for crossing serialization boundaries."""
