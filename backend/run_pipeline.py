from __future__ import annotations
from jobpipe.cli import app


if __name__ == "__main__":
    app()
