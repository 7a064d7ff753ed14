"""Command line interface for docker-volume-backup."""
