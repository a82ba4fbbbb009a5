"""Main entry point for running the FastAPI application with auto-reload."""
import uvicorn

from crm.config import settings

if __name__ == "__main__":
    print(f"Starting {settings.app_name} v{settings.version} ({settings.environment.value})")
    print(f"Database: {settings.db.url.split('@')[-1] if '@' in settings.db.url else settings.db.url}")
    print(f"Semantic backend: {settings.semantic.backend.value}")
    print(f"Auto-reload: {'Enabled' if settings.debug else 'Disabled'}")
    print("-" * 50)

    uvicorn.run(
        "crm.api:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        reload_dirs=["crm", "semantic", "catalog"] if settings.debug else None,
        log_level=settings.logging.level.lower(),
    )
