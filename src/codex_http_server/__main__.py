"""Allow running as ``python -m codex_http_server``."""

from .cli import main

if __name__ == "__main__":
    main()
