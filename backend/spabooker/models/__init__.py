from .entities import Base, metadata

__all__ = ["Base", "metadata"]
