"""Run the timer server with uvicorn."""

import uvicorn

from obs_timer.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "obs_timer.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
