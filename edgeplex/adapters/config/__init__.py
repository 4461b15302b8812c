from edgeplex.adapters.config.loader import load_settings
from edgeplex.adapters.config.schema import Settings

__all__ = ["Settings", "load_settings"]
