"""SMTP submission through the local bridge."""
