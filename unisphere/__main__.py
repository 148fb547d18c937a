import uvicorn

from unisphere.config import settings


def main() -> None:
    uvicorn.run(
        "unisphere.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        ws_max_size=settings.WS_READ_LIMIT_BYTES,
        ws_ping_interval=settings.ws_ping_period,
        ws_ping_timeout=settings.WS_PONG_WAIT_SECONDS,
        timeout_graceful_shutdown=settings.SHUTDOWN_TIMEOUT_SECONDS,
    )


if __name__ == "__main__":
    main()
