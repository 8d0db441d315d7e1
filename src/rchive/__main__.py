"""rchive: rchive/__main__.py."""

from .cli.dispatcher import main

if __name__ == "__main__":
    raise SystemExit(main())
