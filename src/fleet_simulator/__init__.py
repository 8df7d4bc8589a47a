"""fleet-simulator: a simulated GPU-fleet admin terminal.

Parses administrator command lines (``nvidia-smi``, Slurm, ``ipmitool``,
InfiniBand and system tools), validates them against YAML command
definitions, routes them to simulators and keeps each training scenario's
cluster state isolated from the shared baseline.

Importing the package has no side effects: no config is loaded and no
logging is configured until an entrypoint asks for it.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
