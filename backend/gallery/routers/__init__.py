from gallery.routers import entries, health

__all__ = [
    "entries",
    "health",
]
