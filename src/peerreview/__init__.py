"""Peer review random assignment — reviewer groups to reviewee groups."""
