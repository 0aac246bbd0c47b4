from .studio import HeadshotStudio

__all__ = ["HeadshotStudio"]
