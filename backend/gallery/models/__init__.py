from gallery.models.entry import Entry

__all__ = [
    "Entry",
]
