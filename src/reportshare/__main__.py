import argparse

import uvicorn

from .config import settings
from .logging_config import configure_logging
from .storage import create_storage


def _init_db() -> None:
    storage = create_storage(settings)
    storage.init()
    try:
        print(f"Storage backend {storage.name!r} ready.")
        if storage.name in ("disk", "blob"):
            print(f"Database: {settings.db_url}")
        if storage.name == "disk":
            print(f"Files directory: {settings.files_dir}")
    finally:
        storage.close()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="reportshare")
    parser.add_argument("command", choices=["serve", "init-db"], nargs="?", default="serve")
    args = parser.parse_args(argv)

    configure_logging(settings.log_level)
    if args.command == "init-db":
        _init_db()
        return

    uvicorn.run("reportshare.main:create_app", factory=True, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
