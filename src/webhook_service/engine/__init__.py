"""Webhook engine — models, services and inbound processing."""
