from catalog.models.course import Course

__all__ = [
    "Course",
]
