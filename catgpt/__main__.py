import uvicorn

from catgpt.config.settings import get_settings


def main():
    settings = get_settings()
    uvicorn.run(
        "catgpt.application.api.api_server:app",
        host=settings.host,
        port=settings.port,
        log_config=None
    )


if __name__ == "__main__":
    main()
