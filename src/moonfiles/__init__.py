"""moonfiles - file roots, listings and transfers for Moonraker hosts."""

__version__ = "0.1.0"
