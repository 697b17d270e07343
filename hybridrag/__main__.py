"""Allow running as ``python -m hybridrag``."""

from hybridrag.cli.main import app

if __name__ == "__main__":
    app()
