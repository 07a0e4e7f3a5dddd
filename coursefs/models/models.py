from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, Index, PrimaryKeyConstraint, String, Text, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Set naming convention for consistency
POSTGRES_INDEXES_NAMING_CONVENTION = {
    "ix": "%(column_0_label)s_idx",
    "uq": "%(table_name)s_%(column_0_name)s_key",
    "ck": "%(table_name)s_%(constraint_name)s_check",
    "fk": "%(table_name)s_%(column_0_name)s_fkey",
    "pk": "%(table_name)s_pkey",
}
Base.metadata.naming_convention = POSTGRES_INDEXES_NAMING_CONVENTION


class CourseResource(Base):
    """Flat resource table; folders are rows too, nesting lives in `path`."""
    __tablename__ = 'course_resources'
    __table_args__ = (
        PrimaryKeyConstraint('course_id', 'path'),
        Index('course_resources_course_id_path_pattern_idx', 'course_id', 'path',
              postgresql_ops={'path': 'text_pattern_ops'}),
    )

    course_id = Column(String(255), nullable=False)
    path = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    kind = Column(String(20), nullable=False, default='file')  # file, folder
    size = Column(BigInteger, nullable=True)
    url = Column(Text, nullable=True)
    mime_type = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), default=datetime.now)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<CourseResource(course_id={self.course_id}, path={self.path}, kind={self.kind})>"
