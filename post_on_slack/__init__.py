"""Post on Slack - send messages, files and console output to Slack from the shell."""

__version__ = "0.1.0"  # x-release-please-version
