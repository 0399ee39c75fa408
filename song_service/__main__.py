"""API server entry point for python -m song_service"""
import uvicorn

from song_service.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "song_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )
