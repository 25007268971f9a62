import uvicorn

from mafia.config.server_env import load_server_settings


if __name__ == "__main__":
    settings = load_server_settings()
    uvicorn.run(
        "mafia.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
    )
