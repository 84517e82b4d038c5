"""
Entry point for `python -m pgpclient`.
"""

from __future__ import annotations


def main():
    from .cli import run_cli
    run_cli()


if __name__ == "__main__":
    main()
