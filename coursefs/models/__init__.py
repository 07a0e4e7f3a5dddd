# Import all models here to make them available when importing the models package
from coursefs.models.models import (
    Base,
    CourseResource,
)

# Re-export all models at the package level
__all__ = [
    'Base',
    'CourseResource',
]
