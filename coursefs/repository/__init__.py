from coursefs.repository.resource import ResourceRepository, PostgresResourceStore

# Create instances for dependency injection
resource_repository = ResourceRepository()

__all__ = ["ResourceRepository", "PostgresResourceStore", "resource_repository"]
