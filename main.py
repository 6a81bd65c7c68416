"""Run the Evently Ticketing API under uvicorn."""

from evently_ticketing.config import settings


def main():
    """CLI entry point (``evently-ticketing``)."""
    import uvicorn

    # log_config=None keeps the dictConfig installed by the app module
    uvicorn.run(
        "evently_ticketing.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
