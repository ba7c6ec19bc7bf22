import logging

# Per-request wire logging from the model and relay transports.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def configure_logging(log_level: str) -> None:
    """Configure process-wide logging for the relay server and client tooling.

    Transport libraries stay at WARNING unless the relay itself logs at DEBUG.
    """

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    transport_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)
