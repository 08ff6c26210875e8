from py_kit.errors import PyKitError
from py_kit.repository import Repository

__version__ = "0.1.0"

__all__ = ["PyKitError", "Repository", "__version__"]
