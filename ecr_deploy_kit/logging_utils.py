import logging
import sys

import click


_TAG_COLORS = {
    "INFO": "blue",
    "SUCCESS": "green",
    "WARNING": "yellow",
    "SKIPPED": "yellow",
    "FAILED": "red",
    "ERROR": "red",
}


def setup_logging(verbosity: int = 0) -> None:
    level = logging.INFO
    if verbosity >= 1:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def echo_tagged(tag: str, message: str, *, err: bool = False) -> None:
    """[SUCCESS] / [ERROR] 같은 태그를 색을 입혀 출력한다. (TTY 가 아니면 색 없음)"""
    label = click.style(f"[{tag}]", fg=_TAG_COLORS.get(tag), bold=True)
    click.echo(f"{label} {message}", err=err)
