from datetime import datetime

from pydantic import BaseModel, Field


class CourseCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    branch: str | None = None
    technology: str | None = None
    program: str | None = None
    price: float = Field(default=0, ge=0)
    duration: str | None = None
    tags: str | None = None


class CourseUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    branch: str | None = None
    technology: str | None = None
    program: str | None = None
    price: float | None = Field(default=None, ge=0)
    duration: str | None = None
    tags: str | None = None


class CourseResponse(BaseModel):
    id: int
    title: str
    description: str | None
    branch: str | None
    technology: str | None
    program: str | None
    price: float
    duration: str | None
    tags: str | None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class CoursePage(BaseModel):
    courses: list[CourseResponse]
    current_page: int
    total_pages: int
    total_count: int
    has_next_page: bool
    has_prev_page: bool


class BrowserState(CoursePage):
    """Everything the rendering layer needs to draw the grid and pager."""
    loading: bool
    error: str | None = None
    fatal_error: str | None = None  # connectivity lost; shown as a blocking page
