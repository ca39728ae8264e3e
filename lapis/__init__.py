"""Main module for the lapis installer API.

The API is organized around the `standard.Installer` class, which prepares a runnable
installation of the game given a `standard.Config`: it resolves the version metadata,
merges an optional mod loader into it, downloads or repairs every required file and
finally runs the post-install processors that some loaders need.
"""

LAUNCHER_NAME = "lapis"
LAUNCHER_VERSION = "1.0.0"
LAUNCHER_AUTHORS = ["Lapis contributors"]
